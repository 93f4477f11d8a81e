"""Tests for the Redis Stream worker (agent_actions/worker.py)."""

import json
from typing import Any
from uuid import uuid4

import pytest
from fakeredis import aioredis

from agent_actions.schemas import ActionRunRequestEvent, ScheduleTickEvent
from agent_actions.schemas.events import QueuedEvent
from agent_actions.worker import EventWorker, decode_event

pytestmark = pytest.mark.unit

STREAM = "agent-actions:events"


class RecordingDispatcher:
    """Stands in for the engine dispatcher and remembers what it was handed."""

    def __init__(self, error: Exception | None = None) -> None:
        self.events: list[QueuedEvent] = []
        self.error = error

    async def handle_event(self, event: QueuedEvent) -> dict[str, Any]:
        if self.error is not None:
            raise self.error
        self.events.append(event)
        return {"status": "success"}


@pytest.fixture
async def redis_client() -> Any:
    client = aioredis.FakeRedis()
    yield client
    await client.aclose()


async def _worker(redis_client: Any, dispatcher: RecordingDispatcher) -> EventWorker:
    worker = EventWorker("redis://unused", STREAM, "engine", "test-consumer", dispatcher=dispatcher)  # type: ignore[arg-type]
    worker._redis = redis_client
    await worker._ensure_consumer_group()
    return worker


async def _drain(worker: EventWorker) -> None:
    worker.block_ms = 10
    entries = await worker._read_batch()
    await worker._process_entries(entries)


class TestDecodeEvent:
    """Payloads may be a JSON envelope or flat stream fields."""

    def test_event_envelope(self) -> None:
        action_id, record_id = uuid4(), uuid4()
        payload = {
            b"event": json.dumps(
                {"type": "action_run", "action_id": str(action_id), "record_id": str(record_id)}
            ).encode()
        }

        event = decode_event(payload)

        assert isinstance(event, ActionRunRequestEvent)
        assert event.record_id == record_id

    def test_flat_fields(self) -> None:
        payload = {b"type": b"schedule_tick", b"limit": b"5"}

        event = decode_event(payload)

        assert isinstance(event, ScheduleTickEvent)
        assert event.limit == 5

    def test_non_object_envelope_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            decode_event({b"data": b"[1, 2]"})


class TestProcessEntries:
    """Handled events are acknowledged; failures go to the dead letter stream."""

    async def test_event_is_dispatched_and_acked(self, redis_client: Any) -> None:
        dispatcher = RecordingDispatcher()
        worker = await _worker(redis_client, dispatcher)
        await redis_client.xadd(STREAM, {"type": "schedule_tick"})

        await _drain(worker)

        assert len(dispatcher.events) == 1
        assert isinstance(dispatcher.events[0], ScheduleTickEvent)
        pending = await redis_client.xpending(STREAM, "engine")
        assert pending["pending"] == 0

    async def test_invalid_event_goes_to_dead_letter_stream(self, redis_client: Any) -> None:
        dispatcher = RecordingDispatcher()
        worker = await _worker(redis_client, dispatcher)
        await redis_client.xadd(STREAM, {"type": "reboot", "reason": "now"})

        await _drain(worker)

        assert dispatcher.events == []
        dead = await redis_client.xrange(f"{STREAM}:dlq")
        assert len(dead) == 1
        fields = dead[0][1]
        assert json.loads(fields[b"payload"]) == {"type": "reboot", "reason": "now"}
        assert (await redis_client.xpending(STREAM, "engine"))["pending"] == 0

    async def test_handler_error_goes_to_dead_letter_stream(self, redis_client: Any) -> None:
        worker = await _worker(redis_client, RecordingDispatcher(error=RuntimeError("db down")))
        await redis_client.xadd(STREAM, {"type": "schedule_tick"})

        await _drain(worker)

        dead = await redis_client.xrange(f"{STREAM}:dlq")
        assert dead[0][1][b"error"] == b"db down"

    async def test_existing_group_is_reused(self, redis_client: Any) -> None:
        worker = await _worker(redis_client, RecordingDispatcher())

        await worker._ensure_consumer_group()
