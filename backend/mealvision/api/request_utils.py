import json
import logging
from typing import Any, Optional, Tuple

from fastapi import Request, Response
from starlette.datastructures import FormData, UploadFile

from config import MAX_UPLOAD_BYTES
from mealvision.exceptions import InputValidationError, MissingFieldError, PayloadTooLarge

logger = logging.getLogger(__name__)

PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, Accept",
    "Access-Control-Max-Age": "86400",
}

TRUE_VALUES = ("1", "true", "yes", "on")


def preflight_response() -> Response:
    return Response(status_code=204, headers=PREFLIGHT_HEADERS)


def ensure_content_length(request: Request) -> None:
    """Rejects oversized bodies from the declared Content-Length, before anything is read."""
    declared = request.headers.get("content-length")
    if declared is None:
        return
    try:
        size = int(declared)
    except ValueError:
        raise InputValidationError(f"Invalid Content-Length header '{declared}'")
    if size > MAX_UPLOAD_BYTES:
        logger.info(f"[Request] Rejected {request.url.path}: Content-Length {size} > {MAX_UPLOAD_BYTES}")
        raise PayloadTooLarge(f"Request body is {size} bytes; limit is {MAX_UPLOAD_BYTES}")


async def read_form(request: Request) -> FormData:
    ensure_content_length(request)
    # Text parts (base64 images) may be as large as an upload
    return await request.form(max_part_size=MAX_UPLOAD_BYTES)


async def read_upload(form: FormData, field: str = "file") -> Tuple[bytes, str, str]:
    """Returns (bytes, filename, content type) of a multipart file field."""
    upload = form.get(field)
    if not isinstance(upload, UploadFile):
        raise MissingFieldError(f"Multipart field '{field}' with an image file is required")
    data = await upload.read()
    if not data:
        raise MissingFieldError(f"Uploaded file '{upload.filename}' is empty")
    if len(data) > MAX_UPLOAD_BYTES:
        raise PayloadTooLarge(f"Image is {len(data)} bytes; limit is {MAX_UPLOAD_BYTES}")
    return data, upload.filename or "", upload.content_type or ""


def form_text(form: FormData, field: str, required: bool = False) -> Optional[str]:
    value = form.get(field)
    if isinstance(value, UploadFile):
        raise InputValidationError(f"Field '{field}' must be text, not a file")
    if value is None or not value.strip():
        if required:
            raise MissingFieldError(f"Field '{field}' is required")
        return None
    return value


def form_json(form: FormData, field: str, required: bool = False) -> Any:
    raw = form_text(form, field, required=required)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise InputValidationError(f"Field '{field}' is not valid JSON: {e}")


def form_flag(form: FormData, field: str) -> bool:
    value = form_text(form, field)
    return value is not None and value.strip().lower() in TRUE_VALUES
