"""Stuck-job recovery.

A record left in `processing` with no live queue message is an orphan of a
crashed run. Recovery re-enqueues it under a deterministic message id so a
deduplicating queue never holds two live retries for the same job. Records are
never written here; the fresh pipeline run overwrites them.

There is no heartbeat on the record itself, so a slow job in another
process looks the same as a crashed one. `stale_after_seconds` narrows the
scan to records that have not been touched for a while.
"""

from dataclasses import dataclass
from datetime import timedelta

from loguru import logger

from imagejobs.db.job_store import JobRecordStore
from imagejobs.jobs.models import JobStatus, WorkItem
from imagejobs.jobs.work_queue import WorkQueue
from imagejobs.utils.time import utc_now


def retry_message_id(job_id: str) -> str:
    return f"retry-{job_id}"


@dataclass
class RecoveryReport:
    scanned: int = 0
    requeued: int = 0
    skipped: int = 0
    failed: int = 0


async def recover_stuck_jobs(
    store: JobRecordStore,
    queue: WorkQueue,
    stale_after_seconds: float = 0.0,
) -> RecoveryReport:
    """Re-enqueue every orphaned `processing` job. Safe to run repeatedly."""
    report = RecoveryReport()
    processing_jobs = await store.find_by_status(JobStatus.PROCESSING)
    report.scanned = len(processing_jobs)
    logger.info(
        f"Found {report.scanned} jobs in PROCESSING status that may need to be retried"
    )

    cutoff = None
    if stale_after_seconds > 0:
        cutoff = utc_now() - timedelta(seconds=stale_after_seconds)

    for job in processing_jobs:
        log = logger.bind(job_id=job.id)

        if cutoff is not None and job.updated_at > cutoff:
            log.debug("Job updated recently, leaving it alone")
            report.skipped += 1
            continue

        try:
            primary = await queue.get_state(job.id)
            retry = await queue.get_state(retry_message_id(job.id))
            if primary.is_live or retry.is_live:
                log.debug("Job still has a live queue message, leaving it alone")
                report.skipped += 1
                continue

            log.info(f"Re-queueing job {job.id}")
            await queue.add(
                job.kind.value,
                WorkItem.from_record(job),
                message_id=retry_message_id(job.id),
            )
        except Exception as exc:
            log.opt(exception=exc).error(f"Failed to re-queue job {job.id}: {exc}")
            report.failed += 1
            continue

        report.requeued += 1
        log.info(f"Successfully re-queued job {job.id}")

    logger.info(
        f"Recovery finished: {report.requeued} requeued, "
        f"{report.skipped} skipped, {report.failed} failed"
    )
    return report
