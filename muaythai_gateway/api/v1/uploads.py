"""POST /api/uploads/validate - image upload validation"""

import logging

from fastapi import APIRouter, HTTPException, Query, Request

from muaythai_gateway.api.dependencies import get_request_id
from muaythai_gateway.api.v1.schemas import UploadValidationResponse
from muaythai_gateway.domain.exceptions import InvalidUploadError
from muaythai_gateway.domain.file_validation import validate_upload

router = APIRouter()


@router.post("/uploads/validate", response_model=UploadValidationResponse)
async def validate_image_upload(
    request: Request,
    filename: str = Query(..., min_length=1, description="Original file name"),
):
    """Check the raw request body against the image upload rules"""
    data = await request.body()
    content_type = request.headers.get("content-type", "").split(";")[0].strip()

    try:
        sanitized = validate_upload(filename, content_type, data)
    except InvalidUploadError as e:
        logging.warning(f"Upload rejected: {e}", extra={"request_id": get_request_id(request)})
        raise HTTPException(status_code=422, detail=str(e))

    return UploadValidationResponse(valid=True, sanitized_filename=sanitized)
