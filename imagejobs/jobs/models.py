"""Job record, queue payload and read-model types."""

import math
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from imagejobs.utils.time import utc_now


class JobStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.PROCESSING


class JobKind(str, Enum):
    """Supported work types. Handlers live in the kind registry."""
    THUMBNAIL = "thumbnail"


class QueueState(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    DELAYED = "delayed"
    COMPLETED = "completed"
    FAILED = "failed"
    UNKNOWN = "unknown"

    @property
    def is_live(self) -> bool:
        return self in (QueueState.WAITING, QueueState.ACTIVE, QueueState.DELAYED)


class JobRecord(BaseModel):
    """Tracks the lifecycle of one accepted submission."""
    id: str
    owner_id: str
    source_location: str
    original_filename: Optional[str] = None
    kind: JobKind = JobKind.THUMBNAIL
    parameters: Dict[str, Any] = Field(default_factory=dict)
    status: JobStatus = JobStatus.PROCESSING
    progress: int = 0
    result_location: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class NewJob(BaseModel):
    """Everything Submission knows before the store assigns an id."""
    owner_id: str
    source_location: str
    original_filename: Optional[str] = None
    kind: JobKind
    parameters: Dict[str, Any] = Field(default_factory=dict)


class WorkItem(BaseModel):
    """Queue payload handed to the execution pipeline."""
    job_id: str
    source_location: str
    owner_id: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    kind: JobKind

    @classmethod
    def from_record(cls, record: JobRecord) -> "WorkItem":
        return cls(
            job_id=record.id,
            source_location=record.source_location,
            owner_id=record.owner_id,
            parameters=dict(record.parameters),
            kind=record.kind,
        )


class QueueMessage(BaseModel):
    id: str
    name: str
    data: WorkItem
    attempts: int = 1
    attempts_made: int = 0
    state: QueueState = QueueState.WAITING
    failed_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    finished_at: Optional[datetime] = None


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JobView(_CamelModel):
    """Job record composed with the live queue state."""
    job_id: str
    owner_id: str
    original_filename: Optional[str] = None
    result_image_url: Optional[str] = None
    job_type: JobKind
    options: Dict[str, Any] = Field(default_factory=dict)
    status: JobStatus
    progress: int
    error: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    queue_info: QueueState = QueueState.UNKNOWN

    @classmethod
    def from_record(
        cls, record: JobRecord, queue_info: QueueState = QueueState.UNKNOWN
    ) -> "JobView":
        return cls(
            job_id=record.id,
            owner_id=record.owner_id,
            original_filename=record.original_filename,
            result_image_url=record.result_location,
            job_type=record.kind,
            options=record.parameters,
            status=record.status,
            progress=record.progress,
            error=record.failure_reason,
            created_at=record.created_at,
            updated_at=record.updated_at,
            queue_info=queue_info,
        )


class Pagination(_CamelModel):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, pages=math.ceil(total / limit))


class JobPage(_CamelModel):
    jobs: List[JobView]
    pagination: Pagination
