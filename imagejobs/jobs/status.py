"""Status query: job records composed with live queue state."""

from typing import Optional

from loguru import logger

from imagejobs.db.job_store import JobRecordStore
from imagejobs.errors import JobNotFoundError, JobValidationError
from imagejobs.jobs.models import JobPage, JobStatus, JobView, Pagination, QueueState
from imagejobs.jobs.recovery import retry_message_id
from imagejobs.jobs.work_queue import WorkQueue

MAX_PAGE_SIZE = 100


class StatusQuery:
    """Read-only; never mutates records or queue state."""

    def __init__(self, store: JobRecordStore, queue: WorkQueue):
        self._store = store
        self._queue = queue

    async def queue_state(self, job_id: str) -> QueueState:
        """Latest delivery state: a recovery retry wins over the original message."""
        retry = await self._queue.get_state(retry_message_id(job_id))
        if retry != QueueState.UNKNOWN:
            return retry
        return await self._queue.get_state(job_id)

    async def get_status(self, job_id: str) -> JobView:
        record = await self._store.get(job_id)
        if record is None:
            raise JobNotFoundError(job_id)
        return JobView.from_record(record, await self.queue_state(job_id))

    async def get_user_jobs(
        self,
        owner_id: str,
        status_filter: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> JobPage:
        if page < 1:
            raise JobValidationError("page must be >= 1")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise JobValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

        status = None
        if status_filter:
            try:
                status = JobStatus(status_filter)
            except ValueError:
                logger.debug(f"Ignoring unknown status filter '{status_filter}'")

        records, total = await self._store.list_for_owner(
            owner_id, status=status, offset=(page - 1) * limit, limit=limit
        )
        jobs = [
            JobView.from_record(r, await self.queue_state(r.id)) for r in records
        ]
        return JobPage(jobs=jobs, pagination=Pagination.build(page, limit, total))
