"""Job submission: validate, persist the record, enqueue the work item."""

import asyncio
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from loguru import logger
from pydantic import ValidationError

from imagejobs.config import Settings
from imagejobs.db.job_store import JobRecordStore
from imagejobs.errors import JobValidationError, QueueError
from imagejobs.jobs.models import JobKind, JobRecord, NewJob, WorkItem
from imagejobs.jobs.work_queue import WorkQueue
from imagejobs.processing.kinds import KindRegistry


@dataclass
class UploadedArtifact:
    """An upload the HTTP layer already saved to disk."""
    path: str
    original_filename: Optional[str] = None
    content_type: Optional[str] = None
    size: int = 0


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    field = ".".join(str(p) for p in err.get("loc", ())) or "options"
    return f"Invalid option '{field}': {err.get('msg', 'invalid value')}"


class JobSubmission:

    def __init__(
        self,
        store: JobRecordStore,
        queue: WorkQueue,
        registry: KindRegistry,
        settings: Settings,
    ):
        self._store = store
        self._queue = queue
        self._registry = registry
        self._settings = settings

    async def submit(
        self,
        owner_id: Optional[str],
        artifact: Optional[UploadedArtifact],
        kind: Any = JobKind.THUMBNAIL,
        raw_options: Optional[Dict[str, Any]] = None,
    ) -> JobRecord:
        """Accept one job. Returns the persisted record without waiting for it."""
        if not owner_id or not str(owner_id).strip():
            logger.warning("Missing ownerId in request")
            raise JobValidationError("Missing required fields")

        if artifact is None or not artifact.path or not os.path.isfile(artifact.path):
            logger.warning("No file uploaded in request")
            raise JobValidationError("No file uploaded")

        spec = self._registry.get(kind)
        if spec is None:
            raise JobValidationError(f"Unsupported job type: {kind}")

        loop = asyncio.get_running_loop()
        is_valid = await loop.run_in_executor(
            None,
            spec.is_valid_source,
            artifact.path,
            self._settings.min_image_dimension,
        )
        if not is_valid:
            raise JobValidationError("Invalid image")

        try:
            parameters = spec.normalize(raw_options or {}, self._settings)
        except ValidationError as exc:
            raise JobValidationError(_first_error(exc)) from exc

        record = await self._store.create(
            NewJob(
                owner_id=str(owner_id).strip(),
                source_location=artifact.path,
                original_filename=artifact.original_filename,
                kind=spec.kind,
                parameters=parameters,
            )
        )
        log = logger.bind(job_id=record.id)
        log.info("Image job record created")

        try:
            await self._queue.add(
                spec.kind.value, WorkItem.from_record(record), message_id=record.id
            )
        except Exception as exc:
            # Record stays `processing`; recovery re-enqueues it on next start.
            log.error(f"Failed to enqueue job on {self._queue.name}: {exc}")
            raise QueueError("Failed to create job") from exc

        log.info(f"Job successfully queued on {self._queue.name}")
        return record
