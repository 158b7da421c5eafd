"""Process-wide service wiring.

One record store, one queue and one worker pool are built per process at
startup and handed to every component that needs them.
"""

from dataclasses import dataclass
from typing import Optional

from imagejobs.config import Settings
from imagejobs.db.job_store import InMemoryJobStore, JobRecordStore
from imagejobs.jobs.in_process_queue import InProcessQueue
from imagejobs.jobs.pipeline import JobPipeline
from imagejobs.jobs.status import StatusQuery
from imagejobs.jobs.submission import JobSubmission
from imagejobs.jobs.work_queue import WorkQueue
from imagejobs.jobs.worker_pool import WorkerPool
from imagejobs.processing.kinds import KindRegistry, default_registry
from imagejobs.processing.transformer import ImageTransformer
from imagejobs.storage.publisher import LocalPublisher
from imagejobs.storage.temp_results import TempWorkspace


@dataclass
class Services:
    settings: Settings
    store: JobRecordStore
    queue: WorkQueue
    registry: KindRegistry
    workspace: TempWorkspace
    publisher: LocalPublisher
    pipeline: JobPipeline
    submission: JobSubmission
    status: StatusQuery
    pool: WorkerPool


def build_store(settings: Settings) -> JobRecordStore:
    if settings.record_store == "memory":
        return InMemoryJobStore()
    if settings.record_store == "supabase":
        from imagejobs.db.supabase_client import create_supabase
        from imagejobs.db.supabase_store import SupabaseJobStore

        return SupabaseJobStore(
            create_supabase(settings), table=settings.supabase_jobs_table
        )
    raise ValueError(f"Unknown RECORD_STORE '{settings.record_store}'")


def build_services(
    settings: Settings,
    store: Optional[JobRecordStore] = None,
    queue: Optional[WorkQueue] = None,
    registry: Optional[KindRegistry] = None,
) -> Services:
    store = store or build_store(settings)
    queue = queue or InProcessQueue(
        settings.queue_name,
        attempts=settings.queue_attempts,
        backoff_seconds=settings.queue_backoff_seconds,
        backoff_type=settings.queue_backoff_type,
        keep_completed=settings.queue_keep_completed,
        keep_failed=settings.queue_keep_failed,
    )
    registry = registry or default_registry()
    workspace = TempWorkspace(settings.temp_dir, ttl_hours=settings.work_dir_ttl_hours)
    publisher = LocalPublisher(settings.uploads_dir, settings.base_url)
    pipeline = JobPipeline(store, ImageTransformer(registry), publisher, workspace)
    pool = WorkerPool(
        queue,
        store,
        pipeline,
        concurrency=settings.worker_concurrency,
        drain_timeout=settings.worker_drain_timeout,
        recovery_stale_after=settings.recovery_stale_after_seconds,
        recovery_interval=settings.recovery_interval_seconds,
    )
    return Services(
        settings=settings,
        store=store,
        queue=queue,
        registry=registry,
        workspace=workspace,
        publisher=publisher,
        pipeline=pipeline,
        submission=JobSubmission(store, queue, registry, settings),
        status=StatusQuery(store, queue),
        pool=pool,
    )
