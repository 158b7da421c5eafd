"""Work queue interface (local or external broker)."""

from abc import ABC, abstractmethod
from typing import Dict, Optional

from imagejobs.jobs.models import QueueMessage, QueueState, WorkItem


class WorkQueue(ABC):
    """FIFO channel with at-least-once delivery and per-message leases.

    Messages are deduplicated by id: adding a message whose id is still
    known to the queue returns the existing message instead.
    """

    name: str

    @abstractmethod
    async def add(
        self,
        job_name: str,
        data: WorkItem,
        message_id: Optional[str] = None,
    ) -> QueueMessage:
        """Enqueue a work item. Returns the stored (or already live) message.

        A message id that is still live dedupes the add. A finished message
        with the same id is superseded by the new one.
        """
        ...

    @abstractmethod
    async def lease(self, timeout: float = 1.0) -> Optional[QueueMessage]:
        """Take ownership of the next waiting message, or None on timeout."""
        ...

    @abstractmethod
    async def ack(self, message_id: str) -> None:
        """Mark a leased message as successfully processed."""
        ...

    @abstractmethod
    async def fail(self, message_id: str, reason: str, retryable: bool = True) -> bool:
        """Mark a leased delivery as failed.

        Returns True when the queue will deliver the message again
        (attempts left), False when the failure is final.
        """
        ...

    @abstractmethod
    async def get_state(self, message_id: str) -> QueueState:
        ...

    @abstractmethod
    async def counts(self) -> Dict[str, int]:
        """Number of known messages per state."""
        ...

    @abstractmethod
    async def close(self) -> None:
        ...
