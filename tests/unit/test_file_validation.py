"""Unit tests for upload validation"""

import pytest
from muaythai_gateway.domain.exceptions import InvalidUploadError
from muaythai_gateway.domain.file_validation import (
    MAX_IMAGE_BYTES,
    find_suspicious_content,
    sanitize_filename,
    validate_upload,
)

JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 64
PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
WEBP = b"RIFF\x24\x00\x00\x00WEBPVP8 " + b"\x00" * 64
WAV = b"RIFF\x24\x00\x00\x00WAVEfmt " + b"\x00" * 64


@pytest.mark.parametrize(
    "filename,content_type,data",
    [
        ("gym.jpg", "image/jpeg", JPEG),
        ("gym.JPEG", "image/jpeg", JPEG),
        ("ring.png", "image/png", PNG),
        ("bag.webp", "image/webp", WEBP),
    ],
)
def test_valid_images_accepted(filename, content_type, data):
    """Test genuine images pass and keep their name"""
    assert validate_upload(filename, content_type, data) == filename


@pytest.mark.parametrize(
    "filename,content_type,data,reason",
    [
        ("gym.gif", "image/gif", b"GIF89a", "not allowed"),
        ("gym", "image/jpeg", JPEG, "no extension"),
        ("shell.php", "image/jpeg", JPEG, "Dangerous"),
        ("gym.png", "image/jpeg", JPEG, "does not match"),
        ("gym.jpg", "image/jpeg", b"", "empty"),
        ("gym.jpg", "image/jpeg", PNG, "does not match its declared type"),
        ("sound.webp", "image/webp", WAV, "does not match its declared type"),
    ],
)
def test_invalid_uploads_rejected(filename, content_type, data, reason):
    """Test each rule rejects with a readable reason"""
    with pytest.raises(InvalidUploadError, match=reason):
        validate_upload(filename, content_type, data)


def test_oversized_upload_rejected():
    """Test the 5MB limit"""
    data = JPEG + b"\x00" * MAX_IMAGE_BYTES
    with pytest.raises(InvalidUploadError, match="5MB"):
        validate_upload("big.jpg", "image/jpeg", data)


def test_polyglot_with_script_rejected():
    """Test a valid JPEG header followed by markup is refused"""
    data = JPEG + b"<script>alert(document.cookie)</script>"
    with pytest.raises(InvalidUploadError, match="suspicious"):
        validate_upload("gym.jpg", "image/jpeg", data)


def test_scan_limited_to_leading_bytes():
    """Test patterns beyond the first 10KB are not scanned"""
    data = JPEG + b"\x00" * (10 * 1024) + b"<?php"
    assert find_suspicious_content(data) is None
    assert find_suspicious_content(JPEG + b"<?php system('id'); ?>") is not None


def test_sanitize_filename():
    """Test traversal and separators are stripped"""
    assert sanitize_filename("../../etc/passwd.jpg") == "etcpasswd.jpg"
    assert sanitize_filename('a<b>c:"d".png') == "abcd.png"
    assert sanitize_filename("...") == "file"
    long_name = "x" * 300 + ".png"
    assert len(sanitize_filename(long_name)) == 255
    assert sanitize_filename(long_name).endswith(".png")
