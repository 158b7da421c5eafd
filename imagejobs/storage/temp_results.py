"""Scratch space: incoming uploads and per-job working directories."""

import os
import shutil
import time
import uuid


class TempWorkspace:
    """Manages temporary files with TTL-based cleanup.

    Layout under `base_dir`:
        uploads/<unique><ext>   raw uploads awaiting / serving as job input
        work/<job_id>/          one isolated working directory per job
    """

    def __init__(self, base_dir: str, ttl_hours: int = 2):
        self._base_dir = os.path.abspath(base_dir)
        self._uploads_dir = os.path.join(self._base_dir, "uploads")
        self._work_dir = os.path.join(self._base_dir, "work")
        os.makedirs(self._uploads_dir, exist_ok=True)
        os.makedirs(self._work_dir, exist_ok=True)
        self._ttl_seconds = ttl_hours * 3600

    def new_upload_path(self, original_filename: str) -> str:
        """Unique path for an incoming upload, keeping its extension."""
        ext = os.path.splitext(original_filename or "")[1].lower()
        name = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:12]}{ext}"
        return os.path.join(self._uploads_dir, name)

    def get_job_dir(self, job_id: str) -> str:
        """Get or create the working directory for one job."""
        job_dir = os.path.join(self._work_dir, job_id)
        os.makedirs(job_dir, exist_ok=True)
        return job_dir

    def remove_job_dir(self, job_id: str) -> None:
        """Raises OSError on failure; callers decide whether that matters."""
        job_dir = os.path.join(self._work_dir, job_id)
        if os.path.exists(job_dir):
            shutil.rmtree(job_dir)

    def cleanup_expired(self) -> int:
        """Remove working directories older than TTL. Returns count removed."""
        now = time.time()
        removed = 0
        for entry in os.listdir(self._work_dir):
            job_dir = os.path.join(self._work_dir, entry)
            if not os.path.isdir(job_dir):
                continue
            if now - os.path.getmtime(job_dir) > self._ttl_seconds:
                shutil.rmtree(job_dir, ignore_errors=True)
                removed += 1
        return removed
