import asyncio
from collections import deque

import pytest

from imagejobs.errors import QueueError
from imagejobs.jobs.in_process_queue import InProcessQueue
from imagejobs.jobs.models import JobKind, QueueState, WorkItem


def _item(job_id="job-1"):
    return WorkItem(job_id=job_id, source_location="/tmp/x.png", owner_id="u", kind=JobKind.THUMBNAIL)


@pytest.mark.asyncio
async def test_fifo_lease_and_ack():
    queue = InProcessQueue("test")
    await queue.add("thumbnail", _item("a"), message_id="a")
    await queue.add("thumbnail", _item("b"), message_id="b")

    first = await queue.lease(timeout=0.1)
    assert first.id == "a"
    assert first.attempts_made == 1
    assert await queue.get_state("a") == QueueState.ACTIVE
    assert await queue.get_state("b") == QueueState.WAITING

    await queue.ack("a")
    assert await queue.get_state("a") == QueueState.COMPLETED
    assert (await queue.counts())["completed"] == 1


@pytest.mark.asyncio
async def test_lease_times_out_on_empty_queue():
    queue = InProcessQueue("test")
    assert await queue.lease(timeout=0.05) is None


@pytest.mark.asyncio
async def test_duplicate_message_id_is_not_enqueued_twice():
    queue = InProcessQueue("test")
    await queue.add("thumbnail", _item(), message_id="retry-job-1")
    again = await queue.add("thumbnail", _item(), message_id="retry-job-1")

    assert again.id == "retry-job-1"
    assert (await queue.counts())["waiting"] == 1
    assert await queue.lease(timeout=0.05) is not None
    assert await queue.lease(timeout=0.05) is None


@pytest.mark.asyncio
async def test_unknown_message_state():
    queue = InProcessQueue("test")
    assert await queue.get_state("nope") == QueueState.UNKNOWN


@pytest.mark.asyncio
async def test_history_is_trimmed_by_count():
    queue = InProcessQueue("test", keep_completed=2)
    for name in ("a", "b", "c"):
        await queue.add("thumbnail", _item(name), message_id=name)
        await queue.lease(timeout=0.1)
        await queue.ack(name)

    assert await queue.get_state("a") == QueueState.UNKNOWN
    assert await queue.get_state("b") == QueueState.COMPLETED
    assert await queue.get_state("c") == QueueState.COMPLETED


@pytest.mark.asyncio
async def test_finished_message_id_can_be_added_again():
    queue = InProcessQueue("test")
    await queue.add("thumbnail", _item(), message_id="retry-1")
    await queue.lease(timeout=0.1)
    await queue.fail("retry-1", "worker lost", retryable=False)
    assert await queue.get_state("retry-1") == QueueState.FAILED

    again = await queue.add("thumbnail", _item(), message_id="retry-1")
    assert again.state == QueueState.WAITING
    assert again.attempts_made == 0
    counts = await queue.counts()
    assert counts["waiting"] == 1
    assert counts["failed"] == 0
    assert queue._failed == deque()


@pytest.mark.asyncio
async def test_failure_with_attempts_left_is_delayed_then_redelivered():
    queue = InProcessQueue("test", attempts=2, backoff_seconds=0.05)
    await queue.add("thumbnail", _item(), message_id="m")
    await queue.lease(timeout=0.1)

    will_retry = await queue.fail("m", "glitch")
    assert will_retry is True
    assert await queue.get_state("m") == QueueState.DELAYED

    again = await queue.lease(timeout=1.0)
    assert again.id == "m"
    assert again.attempts_made == 2
    assert await queue.fail("m", "glitch again") is False
    assert await queue.get_state("m") == QueueState.FAILED


@pytest.mark.asyncio
async def test_non_retryable_failure_is_final():
    queue = InProcessQueue("test", attempts=5)
    await queue.add("thumbnail", _item(), message_id="m")
    await queue.lease(timeout=0.1)
    assert await queue.fail("m", "bad kind", retryable=False) is False
    assert await queue.get_state("m") == QueueState.FAILED


@pytest.mark.asyncio
async def test_exponential_backoff_delays():
    queue = InProcessQueue("test", backoff_seconds=1.0, backoff_type="exponential")
    assert queue._backoff_delay(1) == 1.0
    assert queue._backoff_delay(3) == 4.0


def test_unknown_backoff_type_rejected():
    with pytest.raises(ValueError):
        InProcessQueue("test", backoff_type="random")


@pytest.mark.asyncio
async def test_ack_requires_active_lease():
    queue = InProcessQueue("test")
    await queue.add("thumbnail", _item(), message_id="m")
    with pytest.raises(QueueError):
        await queue.ack("m")


@pytest.mark.asyncio
async def test_closed_queue_rejects_new_messages():
    queue = InProcessQueue("test", attempts=2, backoff_seconds=10)
    await queue.add("thumbnail", _item(), message_id="m")
    await queue.lease(timeout=0.1)
    await queue.fail("m", "glitch")
    await queue.close()

    with pytest.raises(QueueError):
        await queue.add("thumbnail", _item("n"), message_id="n")
    await asyncio.sleep(0)
    assert await queue.get_state("m") == QueueState.DELAYED
