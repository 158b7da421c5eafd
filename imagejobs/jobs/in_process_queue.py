"""In-process work queue using asyncio for local development.

Gives the worker pool the same contract an external broker would:
dedupe of live messages by id, leases, attempts with fixed or exponential backoff,
and count-based trimming of finished bookkeeping. Nothing survives a
process restart; that is what stuck-job recovery repairs.
"""

import asyncio
import uuid
from collections import deque
from typing import Deque, Dict, Optional, Set

from loguru import logger

from imagejobs.errors import QueueError
from imagejobs.jobs.models import QueueMessage, QueueState, WorkItem
from imagejobs.jobs.work_queue import WorkQueue
from imagejobs.utils.time import utc_now


class InProcessQueue(WorkQueue):

    def __init__(
        self,
        name: str,
        attempts: int = 1,
        backoff_seconds: float = 0.0,
        backoff_type: str = "fixed",
        keep_completed: int = 100,
        keep_failed: int = 100,
    ):
        if backoff_type not in ("fixed", "exponential"):
            raise ValueError(f"Unknown backoff type '{backoff_type}'")
        self.name = name
        self._attempts = max(1, attempts)
        self._backoff_seconds = backoff_seconds
        self._backoff_type = backoff_type
        self._keep_completed = keep_completed
        self._keep_failed = keep_failed

        self._ready: asyncio.Queue[str] = asyncio.Queue()
        self._messages: Dict[str, QueueMessage] = {}
        self._completed: Deque[str] = deque()
        self._failed: Deque[str] = deque()
        self._timers: Set[asyncio.TimerHandle] = set()
        self._closed = False

    async def add(
        self,
        job_name: str,
        data: WorkItem,
        message_id: Optional[str] = None,
    ) -> QueueMessage:
        if self._closed:
            raise QueueError(f"Queue '{self.name}' is closed")
        message_id = message_id or uuid.uuid4().hex
        existing = self._messages.get(message_id)
        if existing is not None:
            if existing.state.is_live:
                logger.debug(
                    f"Queue {self.name}: message {message_id} already "
                    f"{existing.state.value}, not adding again"
                )
                return existing.model_copy()
            self._forget(existing)

        message = QueueMessage(
            id=message_id,
            name=job_name,
            data=data,
            attempts=self._attempts,
        )
        self._messages[message_id] = message
        self._ready.put_nowait(message_id)
        logger.debug(f"Queue {self.name}: added {job_name} message {message_id}")
        return message.model_copy()

    async def lease(self, timeout: float = 1.0) -> Optional[QueueMessage]:
        try:
            message_id = await asyncio.wait_for(self._ready.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

        message = self._messages.get(message_id)
        if message is None or message.state != QueueState.WAITING:
            return None
        message.state = QueueState.ACTIVE
        message.attempts_made += 1
        return message.model_copy()

    async def ack(self, message_id: str) -> None:
        message = self._require_active(message_id)
        message.state = QueueState.COMPLETED
        message.finished_at = utc_now()
        self._retire(message, self._completed, self._keep_completed)

    async def fail(self, message_id: str, reason: str, retryable: bool = True) -> bool:
        message = self._require_active(message_id)
        message.failed_reason = reason

        if retryable and message.attempts_made < message.attempts:
            delay = self._backoff_delay(message.attempts_made)
            message.state = QueueState.DELAYED
            logger.info(
                f"Queue {self.name}: message {message_id} failed attempt "
                f"{message.attempts_made}/{message.attempts}, retrying in {delay:.1f}s"
            )
            self._schedule(message_id, delay)
            return True

        message.state = QueueState.FAILED
        message.finished_at = utc_now()
        self._retire(message, self._failed, self._keep_failed)
        return False

    async def get_state(self, message_id: str) -> QueueState:
        message = self._messages.get(message_id)
        return message.state if message else QueueState.UNKNOWN

    async def counts(self) -> Dict[str, int]:
        counts = {state.value: 0 for state in QueueState if state != QueueState.UNKNOWN}
        for message in self._messages.values():
            counts[message.state.value] += 1
        return counts

    async def close(self) -> None:
        self._closed = True
        for timer in self._timers:
            timer.cancel()
        self._timers.clear()

    def _require_active(self, message_id: str) -> QueueMessage:
        message = self._messages.get(message_id)
        if message is None or message.state != QueueState.ACTIVE:
            raise QueueError(f"Message {message_id} is not leased")
        return message

    def _backoff_delay(self, attempts_made: int) -> float:
        if self._backoff_type == "exponential":
            return self._backoff_seconds * (2 ** (attempts_made - 1))
        return self._backoff_seconds

    def _schedule(self, message_id: str, delay: float) -> None:
        loop = asyncio.get_running_loop()

        def _release() -> None:
            self._timers.discard(handle)
            message = self._messages.get(message_id)
            if message is not None and message.state == QueueState.DELAYED:
                message.state = QueueState.WAITING
                self._ready.put_nowait(message_id)

        handle = loop.call_later(delay, _release)
        self._timers.add(handle)

    def _forget(self, message: QueueMessage) -> None:
        history = self._completed if message.state == QueueState.COMPLETED else self._failed
        if message.id in history:
            history.remove(message.id)
        self._messages.pop(message.id, None)

    def _retire(self, message: QueueMessage, history: Deque[str], keep: int) -> None:
        history.append(message.id)
        while len(history) > keep:
            self._messages.pop(history.popleft(), None)
