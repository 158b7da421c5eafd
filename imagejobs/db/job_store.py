"""Job record store interface and the in-process implementation."""

import asyncio
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from imagejobs.jobs.models import JobRecord, JobStatus, NewJob
from imagejobs.utils.time import utc_now

# Fields the pipeline may change after creation.
MUTABLE_FIELDS = frozenset(
    {"status", "progress", "result_location", "failure_reason"}
)


class JobRecordStore(ABC):
    """CRUD + query over job documents."""

    @abstractmethod
    async def create(self, job: NewJob) -> JobRecord:
        """Persist a new record in `processing` with progress 0."""
        ...

    @abstractmethod
    async def get(self, job_id: str) -> Optional[JobRecord]:
        ...

    @abstractmethod
    async def update(self, job_id: str, **changes: Any) -> Optional[JobRecord]:
        """Apply changes and advance `updated_at`. None if the record is gone."""
        ...

    @abstractmethod
    async def find_by_status(self, status: JobStatus) -> List[JobRecord]:
        ...

    @abstractmethod
    async def list_for_owner(
        self,
        owner_id: str,
        status: Optional[JobStatus] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[JobRecord], int]:
        """Newest first. Returns (page, total matching)."""
        ...


def check_changes(changes: Dict[str, Any]) -> None:
    unknown = set(changes) - MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"Immutable or unknown job fields: {sorted(unknown)}")


class InMemoryJobStore(JobRecordStore):
    """Dict-backed store. Used for local development and tests."""

    def __init__(self):
        self._jobs: Dict[str, JobRecord] = {}
        self._lock = asyncio.Lock()

    async def create(self, job: NewJob) -> JobRecord:
        now = utc_now()
        record = JobRecord(
            id=uuid.uuid4().hex,
            owner_id=job.owner_id,
            source_location=job.source_location,
            original_filename=job.original_filename,
            kind=job.kind,
            parameters=dict(job.parameters),
            status=JobStatus.PROCESSING,
            progress=0,
            created_at=now,
            updated_at=now,
        )
        async with self._lock:
            self._jobs[record.id] = record
        return record.model_copy(deep=True)

    async def get(self, job_id: str) -> Optional[JobRecord]:
        record = self._jobs.get(job_id)
        return record.model_copy(deep=True) if record else None

    async def update(self, job_id: str, **changes: Any) -> Optional[JobRecord]:
        check_changes(changes)
        async with self._lock:
            record = self._jobs.get(job_id)
            if record is None:
                return None
            changes["updated_at"] = utc_now()
            updated = record.model_copy(update=changes)
            self._jobs[job_id] = updated
        return updated.model_copy(deep=True)

    async def find_by_status(self, status: JobStatus) -> List[JobRecord]:
        return [
            r.model_copy(deep=True)
            for r in self._jobs.values()
            if r.status == status
        ]

    async def list_for_owner(
        self,
        owner_id: str,
        status: Optional[JobStatus] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[JobRecord], int]:
        matching = [
            r for r in self._jobs.values()
            if r.owner_id == owner_id and (status is None or r.status == status)
        ]
        matching.sort(key=lambda r: (r.created_at, r.id), reverse=True)
        page = matching[offset:offset + limit]
        return [r.model_copy(deep=True) for r in page], len(matching)
