"""Job record store backed by a Supabase (PostgREST) table.

Expected table (default name `image_jobs`):

    id uuid primary key default gen_random_uuid(),
    owner_id text not null, source_location text not null,
    original_filename text, kind text not null,
    parameters jsonb not null default '{}',
    status text not null, progress int not null default 0,
    result_location text, failure_reason text,
    created_at timestamptz not null, updated_at timestamptz not null

The supabase client is synchronous; every call runs in the default thread
executor so the event loop is never blocked.
"""

import asyncio
import uuid
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Tuple

from loguru import logger
from supabase import Client

from imagejobs.db.job_store import JobRecordStore, check_changes
from imagejobs.errors import RecordStoreError
from imagejobs.jobs.models import JobRecord, JobStatus, NewJob
from imagejobs.utils.time import utc_now


def _to_column(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


class SupabaseJobStore(JobRecordStore):

    def __init__(self, client: Client, table: str = "image_jobs"):
        self._client = client
        self._table = table

    async def _run(self, description: str, fn: Callable[[], Any]) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, fn)
        except Exception as exc:
            logger.error(f"Supabase {description} failed on {self._table}: {exc}")
            raise RecordStoreError(f"Job store {description} failed: {exc}") from exc

    def _query(self):
        return self._client.table(self._table)

    async def create(self, job: NewJob) -> JobRecord:
        now = utc_now().isoformat()
        row = {
            "owner_id": job.owner_id,
            "source_location": job.source_location,
            "original_filename": job.original_filename,
            "kind": job.kind.value,
            "parameters": dict(job.parameters),
            "status": JobStatus.PROCESSING.value,
            "progress": 0,
            "created_at": now,
            "updated_at": now,
        }
        response = await self._run(
            "insert", lambda: self._query().insert(row).execute()
        )
        if not response.data:
            raise RecordStoreError("Job store insert returned no row")
        return JobRecord.model_validate(response.data[0])

    async def get(self, job_id: str) -> Optional[JobRecord]:
        if not _is_uuid(job_id):
            return None
        response = await self._run(
            "select",
            lambda: self._query().select("*").eq("id", job_id).limit(1).execute(),
        )
        if not response.data:
            return None
        return JobRecord.model_validate(response.data[0])

    async def update(self, job_id: str, **changes: Any) -> Optional[JobRecord]:
        check_changes(changes)
        row: Dict[str, Any] = {k: _to_column(v) for k, v in changes.items()}
        row["updated_at"] = utc_now().isoformat()
        response = await self._run(
            "update",
            lambda: self._query().update(row).eq("id", job_id).execute(),
        )
        if not response.data:
            return None
        return JobRecord.model_validate(response.data[0])

    async def find_by_status(self, status: JobStatus) -> List[JobRecord]:
        response = await self._run(
            "select",
            lambda: self._query().select("*").eq("status", status.value).execute(),
        )
        return [JobRecord.model_validate(row) for row in response.data or []]

    async def list_for_owner(
        self,
        owner_id: str,
        status: Optional[JobStatus] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[JobRecord], int]:
        response = await self._run(
            "list",
            partial(self._list_for_owner_sync, owner_id, status, offset, limit),
        )
        jobs = [JobRecord.model_validate(row) for row in response.data or []]
        return jobs, response.count or 0

    def _list_for_owner_sync(
        self,
        owner_id: str,
        status: Optional[JobStatus],
        offset: int,
        limit: int,
    ):
        query = self._query().select("*", count="exact").eq("owner_id", owner_id)
        if status is not None:
            query = query.eq("status", status.value)
        return (
            query.order("created_at", desc=True)
            .order("id", desc=True)
            .range(offset, offset + limit - 1)
            .execute()
        )
