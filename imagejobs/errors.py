"""Error taxonomy shared by submission, the pipeline and the HTTP layer."""

from typing import Optional


class ImageJobsError(Exception):
    """Base error. `status_code` is what the HTTP layer responds with."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class JobValidationError(ImageJobsError):
    """Rejected submission. No job record is created."""

    status_code = 400


class JobNotFoundError(ImageJobsError):
    status_code = 404

    def __init__(self, job_id: str):
        super().__init__("Job not found")
        self.job_id = job_id


class TransformError(ImageJobsError):
    """The transform capability could not produce an output."""

    retryable = True

    def __init__(self, message: str, retryable: Optional[bool] = None):
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class UnsupportedKindError(TransformError):
    retryable = False

    def __init__(self, kind: str):
        super().__init__(f"Unsupported job type: {kind}")
        self.kind = kind


class PublishError(ImageJobsError):
    """Moving a local output into durable storage failed."""


class InfrastructureError(ImageJobsError):
    """Record store or work queue unreachable / misbehaving."""

    status_code = 500


class RecordStoreError(InfrastructureError):
    pass


class QueueError(InfrastructureError):
    pass
