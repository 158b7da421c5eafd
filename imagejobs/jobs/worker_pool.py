"""Worker pool: bounded number of slots, each running one lease at a time."""

import asyncio
from typing import Any, Dict, List, Optional, Set

from loguru import logger

from imagejobs.db.job_store import JobRecordStore
from imagejobs.errors import TransformError
from imagejobs.jobs.models import JobStatus, QueueMessage
from imagejobs.jobs.pipeline import JobPipeline
from imagejobs.jobs.recovery import recover_stuck_jobs
from imagejobs.jobs.work_queue import WorkQueue


def _failure_reason(exc: BaseException) -> str:
    message = getattr(exc, "message", None) or str(exc)
    return message or type(exc).__name__


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, TransformError):
        return exc.retryable
    return True


class WorkerPool:
    """Leases work items and runs the execution pipeline on them.

    start() runs stuck-job recovery once before any slot leases, so orphans
    from a previous run are queued ahead of fresh submissions.
    """

    def __init__(
        self,
        queue: WorkQueue,
        store: JobRecordStore,
        pipeline: JobPipeline,
        concurrency: int = 5,
        lease_timeout: float = 1.0,
        recovery_stale_after: float = 0.0,
        recovery_interval: float = 0.0,
        drain_timeout: float = 30.0,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._queue = queue
        self._store = store
        self._pipeline = pipeline
        self._concurrency = concurrency
        self._lease_timeout = lease_timeout
        self._recovery_stale_after = recovery_stale_after
        self._recovery_interval = recovery_interval
        self._drain_timeout = drain_timeout

        self._slots: List[asyncio.Task] = []
        self._recovery_task: Optional[asyncio.Task] = None
        self._active: Set[str] = set()
        self._running = False
        self.processed = 0
        self.failed = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> "WorkerPool":
        if self._running:
            return self
        await recover_stuck_jobs(
            self._store, self._queue, stale_after_seconds=self._recovery_stale_after
        )

        self._running = True
        for slot in range(self._concurrency):
            self._slots.append(asyncio.create_task(self._slot_loop(slot)))
        if self._recovery_interval > 0:
            self._recovery_task = asyncio.create_task(self._recovery_loop())
        logger.info(
            f"Worker pool started on {self._queue.name} with {self._concurrency} slots"
        )
        return self

    async def stop(self) -> None:
        """Stop leasing and let in-flight pipelines finish.

        Slots still busy after `drain_timeout` seconds are cancelled.
        """
        self._running = False
        tasks = list(self._slots)
        if self._recovery_task is not None:
            self._recovery_task.cancel()
            tasks.append(self._recovery_task)

        if self._slots:
            _, pending = await asyncio.wait(self._slots, timeout=self._drain_timeout)
            if pending:
                logger.warning(
                    f"{len(pending)} worker slots still busy after "
                    f"{self._drain_timeout}s, cancelling"
                )
            for task in pending:
                task.cancel()

        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._slots.clear()
        self._recovery_task = None
        logger.info(f"Worker pool on {self._queue.name} stopped")

    def snapshot(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "concurrency": self._concurrency,
            "active": len(self._active),
            "idle": max(self._concurrency - len(self._active), 0),
            "processed": self.processed,
            "failed": self.failed,
        }

    async def _slot_loop(self, slot: int) -> None:
        logger.debug(f"Worker slot {slot} ready")
        while self._running:
            message = await self._queue.lease(timeout=self._lease_timeout)
            if message is None:
                continue
            self._active.add(message.id)
            try:
                await self.process(message)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.opt(exception=exc).error(
                    f"Worker slot {slot} could not settle message {message.id}: {exc}"
                )
            finally:
                self._active.discard(message.id)

    async def process(self, message: QueueMessage) -> Optional[str]:
        """Run the pipeline for one leased message and settle the lease."""
        log = logger.bind(job_id=message.data.job_id, message_id=message.id)
        try:
            url = await self._pipeline.execute(message.data)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            reason = _failure_reason(exc)
            log.opt(exception=exc).error(f"Job failed with error: {reason}")
            will_retry = await self._queue.fail(
                message.id, reason, retryable=_is_retryable(exc)
            )
            if not will_retry:
                self.failed += 1
                await self._mark_failed(message.data.job_id, reason)
            return None

        await self._queue.ack(message.id)
        self.processed += 1
        log.info(f"Message {message.id} completed successfully")
        return url

    async def _mark_failed(self, job_id: str, reason: str) -> None:
        try:
            record = await self._store.get(job_id)
            if record is None or record.status == JobStatus.COMPLETED:
                return
            await self._store.update(
                job_id,
                status=JobStatus.FAILED,
                failure_reason=reason,
                result_location=None,
            )
        except Exception as exc:
            logger.bind(job_id=job_id).opt(exception=exc).error(
                f"Could not record failure for job {job_id}: {exc}"
            )

    async def _recovery_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._recovery_interval)
            try:
                await recover_stuck_jobs(
                    self._store,
                    self._queue,
                    stale_after_seconds=self._recovery_stale_after,
                )
            except Exception as exc:
                logger.opt(exception=exc).error(f"Periodic recovery failed: {exc}")
