"""Application configuration via environment variables."""

from typing import List, Optional, Tuple

from pydantic_settings import BaseSettings


def _split_csv(raw: str) -> List[str]:
    return [item.strip().lower() for item in raw.split(",") if item.strip()]


class Settings(BaseSettings):
    # Server
    port: int = 3000
    base_url: str = "http://localhost:3000"

    # Job record store
    record_store: str = "memory"  # "memory" or "supabase"
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    supabase_jobs_table: str = "image_jobs"

    # Work queue / worker pool
    queue_name: str = "image-processing"
    worker_concurrency: int = 5
    worker_drain_timeout: float = 30.0
    start_worker: bool = True
    queue_attempts: int = 1
    queue_backoff_seconds: float = 0.0
    queue_backoff_type: str = "fixed"  # "fixed" or "exponential"
    queue_keep_completed: int = 100
    queue_keep_failed: int = 100

    # Stuck-job recovery
    recovery_stale_after_seconds: float = 0.0
    recovery_interval_seconds: float = 0.0

    # Uploads
    max_file_size: int = 10 * 1024 * 1024
    allowed_mime_types: str = "image/jpeg,image/png,image/gif,image/webp,image/bmp,image/tiff"
    supported_image_formats: str = "jpeg,jpg,png,gif,webp,bmp,tiff"
    min_image_dimension: int = 100

    # Thumbnails
    thumbnail_width: int = 100
    thumbnail_height: int = 100
    thumbnail_medium_width: int = 300
    thumbnail_medium_height: int = 300
    thumbnail_large_width: int = 600
    thumbnail_large_height: int = 600
    thumbnail_quality: int = 80

    # Storage
    uploads_dir: str = "./uploads"
    temp_dir: str = "./temp"
    work_dir_ttl_hours: int = 2

    # Logging
    log_level: str = "DEBUG"
    log_error_file: Optional[str] = None
    log_combined_file: Optional[str] = None

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def allowed_mime_type_list(self) -> List[str]:
        return _split_csv(self.allowed_mime_types)

    @property
    def supported_format_list(self) -> List[str]:
        return _split_csv(self.supported_image_formats)

    def thumbnail_preset(self, name: str) -> Tuple[int, int]:
        """(width, height) for a named thumbnail preset."""
        presets = {
            "small": (self.thumbnail_width, self.thumbnail_height),
            "medium": (self.thumbnail_medium_width, self.thumbnail_medium_height),
            "large": (self.thumbnail_large_width, self.thumbnail_large_height),
        }
        if name not in presets:
            raise KeyError(name)
        return presets[name]


settings = Settings()
