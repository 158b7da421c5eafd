"""Job creation endpoint: receive an image upload and start a job.

POST /api/v1/jobs  (multipart)
    ownerId   form field, required
    image     file, required
    options   optional JSON object, e.g. {"width": 200, "height": 200}
    width, height, quality, format, preset
              optional form fields, override the same keys in `options`
"""

import json
import os
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from loguru import logger
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from imagejobs.api.deps import get_services
from imagejobs.errors import JobValidationError, RecordStoreError
from imagejobs.jobs.models import JobKind, JobStatus
from imagejobs.jobs.submission import UploadedArtifact
from imagejobs.services import Services

router = APIRouter()

_CHUNK_BYTES = 1024 * 1024


class JobCreatedResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    job_id: str
    status: JobStatus
    original_filename: Optional[str] = None


def _check_format(file: UploadFile, services: Services) -> None:
    settings = services.settings
    ext = os.path.splitext(file.filename or "")[1].lstrip(".").lower()
    content_type = (file.content_type or "").lower()
    if ext not in settings.supported_format_list or content_type not in settings.allowed_mime_type_list:
        raise JobValidationError(
            f"Invalid file format: {content_type or 'unknown'}. "
            f"Allowed formats: {', '.join(settings.supported_format_list)}."
        )


async def _save_upload(file: UploadFile, services: Services) -> UploadedArtifact:
    """Stream the upload to disk in 1 MB chunks, enforcing MAX_FILE_SIZE."""
    max_bytes = services.settings.max_file_size
    path = services.workspace.new_upload_path(file.filename or "image")
    total = 0
    try:
        with open(path, "wb") as dst:
            while True:
                chunk = await file.read(_CHUNK_BYTES)
                if not chunk:
                    break
                total += len(chunk)
                if total > max_bytes:
                    raise JobValidationError(
                        f"File too large. Maximum size allowed is {max_bytes} bytes",
                        status_code=413,
                    )
                dst.write(chunk)
    except BaseException:
        if os.path.exists(path):
            os.remove(path)
        raise
    return UploadedArtifact(
        path=path,
        original_filename=file.filename,
        content_type=file.content_type,
        size=total,
    )


def _collect_options(options: Optional[str], overrides: Dict[str, Any]) -> Dict[str, Any]:
    raw: Dict[str, Any] = {}
    if options:
        try:
            raw = json.loads(options)
        except json.JSONDecodeError:
            raise JobValidationError("options must be a JSON object")
        if not isinstance(raw, dict):
            raise JobValidationError("options must be a JSON object")
    raw.update({k: v for k, v in overrides.items() if v is not None})
    return raw


@router.post("/jobs", status_code=201, response_model=JobCreatedResponse)
async def create_job(
    owner_id: Optional[str] = Form(None, alias="ownerId"),
    image: Optional[UploadFile] = File(None),
    options: Optional[str] = Form(None),
    width: Optional[int] = Form(None),
    height: Optional[int] = Form(None),
    quality: Optional[int] = Form(None),
    format: Optional[str] = Form(None),
    preset: Optional[str] = Form(None),
    services: Services = Depends(get_services),
):
    """Accept an image upload, persist the job record and queue it.

    Returns immediately with the job id; poll GET /api/v1/jobs/{job_id}.
    """
    raw_options = _collect_options(
        options,
        {"width": width, "height": height, "quality": quality, "format": format, "preset": preset},
    )

    artifact = None
    if image is not None and image.filename:
        _check_format(image, services)
        artifact = await _save_upload(image, services)

    try:
        record = await services.submission.submit(
            owner_id, artifact, JobKind.THUMBNAIL, raw_options
        )
    except (JobValidationError, RecordStoreError):
        # No record references the upload; a queue failure keeps it for recovery.
        if artifact is not None and os.path.exists(artifact.path):
            os.remove(artifact.path)
        raise

    logger.bind(job_id=record.id).info(
        f"Accepted upload {record.original_filename} for {record.owner_id}"
    )
    return JobCreatedResponse(
        job_id=record.id,
        status=record.status,
        original_filename=record.original_filename,
    )
