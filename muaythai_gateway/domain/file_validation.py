"""Upload validation - extension, size, magic-byte and content checks for gym images"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from muaythai_gateway.domain.exceptions import InvalidUploadError

MAX_IMAGE_BYTES = 5 * 1024 * 1024  # 5MB
SCAN_BYTES = 10 * 1024
MAX_FILENAME_LENGTH = 255


@dataclass(frozen=True)
class FileTypeConfig:
    """Accepted MIME types, extensions and signatures for one file type"""

    mime_types: Tuple[str, ...]
    extensions: Tuple[str, ...]
    magic_bytes: Tuple[bytes, ...]
    max_size: int


FILE_TYPE_CONFIGS: Dict[str, FileTypeConfig] = {
    "image_jpeg": FileTypeConfig(
        mime_types=("image/jpeg", "image/jpg"),
        extensions=("jpg", "jpeg"),
        magic_bytes=(b"\xff\xd8\xff",),
        max_size=MAX_IMAGE_BYTES,
    ),
    "image_png": FileTypeConfig(
        mime_types=("image/png",),
        extensions=("png",),
        magic_bytes=(b"\x89PNG\r\n\x1a\n",),
        max_size=MAX_IMAGE_BYTES,
    ),
    "image_webp": FileTypeConfig(
        mime_types=("image/webp",),
        extensions=("webp",),
        magic_bytes=(b"RIFF",),
        max_size=MAX_IMAGE_BYTES,
    ),
}

DANGEROUS_EXTENSIONS = frozenset(
    [
        "exe", "bat", "cmd", "com", "pif", "scr", "vbs", "js", "jar",
        "app", "deb", "pkg", "rpm", "msi", "dmg", "sh", "bin",
        "php", "php3", "php4", "php5", "phtml", "asp", "aspx", "jsp",
        "py", "rb", "pl", "ps1", "psm1", "psd1",
        "doc", "docx", "xls", "xlsx", "ppt", "pptx",
        "zip", "rar", "7z", "tar", "gz", "bz2",
        "sql", "db", "sqlite", "mdb",
    ]
)

SUSPICIOUS_PATTERNS: List[re.Pattern] = [
    re.compile(rb"<script[^>]*>", re.IGNORECASE),
    re.compile(rb"javascript:", re.IGNORECASE),
    re.compile(rb"eval\s*\(", re.IGNORECASE),
    re.compile(rb"document\.cookie", re.IGNORECASE),
    re.compile(rb"window\.location", re.IGNORECASE),
    re.compile(rb"\.exec\s*\(", re.IGNORECASE),
    re.compile(rb"\.system\s*\(", re.IGNORECASE),
    re.compile(rb"powershell", re.IGNORECASE),
    re.compile(rb"cmd\.exe", re.IGNORECASE),
    re.compile(rb"/bin/sh", re.IGNORECASE),
    re.compile(rb"<\?php", re.IGNORECASE),
]


def sanitize_filename(filename: str) -> str:
    """Strip path separators, traversal sequences and leading/trailing dots"""
    sanitized = re.sub(r'[/\\:*?"<>|]', "", filename)
    sanitized = sanitized.replace("..", "")
    sanitized = sanitized.strip(".")

    if len(sanitized) > MAX_FILENAME_LENGTH:
        stem, _, ext = sanitized.rpartition(".")
        if stem and ext:
            sanitized = f"{stem[: MAX_FILENAME_LENGTH - len(ext) - 1]}.{ext}"
        else:
            sanitized = sanitized[:MAX_FILENAME_LENGTH]

    return sanitized or "file"


def _extension(filename: str) -> Optional[str]:
    if "." not in filename:
        return None
    return filename.rsplit(".", 1)[-1].lower() or None


def _config_for_mime(content_type: str) -> Optional[FileTypeConfig]:
    mime = (content_type or "").split(";")[0].strip().lower()
    for config in FILE_TYPE_CONFIGS.values():
        if mime in config.mime_types:
            return config
    return None


def matches_magic_bytes(data: bytes, config: FileTypeConfig) -> bool:
    if not any(data.startswith(signature) for signature in config.magic_bytes):
        return False
    # RIFF is shared with WAV/AVI, WebP carries its fourcc at offset 8
    if "image/webp" in config.mime_types:
        return data[8:12] == b"WEBP"
    return True


def find_suspicious_content(data: bytes) -> Optional[str]:
    """Return the first suspicious pattern found in the leading bytes, if any"""
    sample = data[:SCAN_BYTES]
    for pattern in SUSPICIOUS_PATTERNS:
        if pattern.search(sample):
            return pattern.pattern.decode("ascii", errors="replace")
    return None


def validate_upload(filename: str, content_type: str, data: bytes) -> str:
    """
    Validate an uploaded image and return its sanitized filename.

    Checks, in order: declared MIME type, dangerous/allowed extension, size,
    magic bytes, and a heuristic scan of the first 10KB for embedded scripts.

    Raises:
        InvalidUploadError: With a human-readable reason on the first failed check
    """
    config = _config_for_mime(content_type)
    if config is None:
        raise InvalidUploadError(f"File type not allowed: {content_type or 'unknown'}")

    extension = _extension(filename)
    if extension is None:
        raise InvalidUploadError("File has no extension")
    if extension in DANGEROUS_EXTENSIONS:
        raise InvalidUploadError(f"Dangerous file extension: .{extension}")
    if extension not in config.extensions:
        raise InvalidUploadError(f"Extension .{extension} does not match {content_type}")

    if not data:
        raise InvalidUploadError("File is empty")
    if len(data) > config.max_size:
        raise InvalidUploadError(f"File exceeds {config.max_size // (1024 * 1024)}MB limit")

    if not matches_magic_bytes(data, config):
        raise InvalidUploadError("File content does not match its declared type")

    suspicious = find_suspicious_content(data)
    if suspicious:
        raise InvalidUploadError("File contains suspicious content")

    return sanitize_filename(filename)
