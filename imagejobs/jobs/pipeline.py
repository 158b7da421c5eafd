"""Job execution pipeline.

mark-processing(30) -> transform -> progress(70) -> publish -> completed(100)

Failures propagate to the worker pool, which owns the `failed` write
because only the queue knows whether another attempt follows. Steps 1 and 6
are plain overwrites, so a second attempt after a crash is harmless.
"""

import asyncio
import os
from typing import Optional

from loguru import logger

from imagejobs.db.job_store import JobRecordStore
from imagejobs.errors import JobNotFoundError
from imagejobs.jobs.models import JobStatus, WorkItem
from imagejobs.processing.transformer import ImageTransformer
from imagejobs.storage.publisher import LocalPublisher
from imagejobs.storage.temp_results import TempWorkspace

PROGRESS_STARTED = 30
PROGRESS_TRANSFORMED = 70
PROGRESS_DONE = 100


class JobPipeline:

    def __init__(
        self,
        store: JobRecordStore,
        transformer: ImageTransformer,
        publisher: LocalPublisher,
        workspace: TempWorkspace,
    ):
        self._store = store
        self._transformer = transformer
        self._publisher = publisher
        self._workspace = workspace

    async def execute(self, item: WorkItem) -> Optional[str]:
        """Run one job to completion. Returns the public URL of the result.

        Returns None without doing anything when the record is already
        terminal (a duplicate delivery).
        """
        log = logger.bind(job_id=item.job_id)

        record = await self._store.get(item.job_id)
        if record is None:
            raise JobNotFoundError(item.job_id)
        if record.status.is_terminal:
            log.info(f"Job already {record.status.value}, skipping duplicate delivery")
            return None

        # 1. mark processing
        await self._store.update(
            item.job_id, status=JobStatus.PROCESSING, progress=PROGRESS_STARTED
        )

        # 2. isolated working directory
        spec = self._transformer.spec_for(item.kind)
        work_dir = self._workspace.get_job_dir(item.job_id)
        log.info(f"Temp directory created {work_dir}")

        try:
            # 3. transform
            filename = spec.output_filename(item.job_id, item.source_location, item.parameters)
            output_path = os.path.join(work_dir, filename)
            log.info(
                f"Processing image {item.source_location} as {item.kind.value} "
                f"with {item.parameters}"
            )
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(
                None,
                self._transformer.transform,
                item.source_location,
                output_path,
                item.kind,
                item.parameters,
            )

            # 4. progress
            await self._store.update(item.job_id, progress=PROGRESS_TRANSFORMED)

            # 5. publish
            key = f"{spec.storage_prefix}/{item.owner_id}/{filename}"
            url = await loop.run_in_executor(None, self._publisher.store, output_path, key)
            log.info(f"Uploaded processed image {url}")

            # 6. complete
            await self._store.update(
                item.job_id,
                status=JobStatus.COMPLETED,
                progress=PROGRESS_DONE,
                result_location=url,
                failure_reason=None,
            )
            log.info("Job completed")
            return url
        finally:
            # 7. cleanup never changes the outcome
            try:
                self._workspace.remove_job_dir(item.job_id)
            except OSError as exc:
                log.warning(f"Failed to clean up temp directory {work_dir}: {exc}")
