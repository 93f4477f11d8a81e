"""Redis Stream worker that runs queued actions and schedule ticks."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import signal
import socket
from collections.abc import Mapping
from contextlib import suppress
from typing import Any, cast

from redis.asyncio import Redis
from redis.exceptions import ResponseError

from agent_actions.api.deps import (
    get_action_runner,
    get_agent_store,
    get_backend,
    get_credential_store,
    get_execution_store,
    get_record_store,
    get_run_guard,
    get_schedule_runner,
    get_schedule_store,
    get_step_executor,
)
from agent_actions.config import EngineSettings, get_settings
from agent_actions.engine import EventDispatcher
from agent_actions.schemas.events import QueuedEvent, queued_event_adapter
from agent_actions.storage.database import dispose_engine, init_db

logger = logging.getLogger(__name__)

DLQ_SUFFIX = ":dlq"
ENVELOPE_FIELDS = ("event", "data")

StreamFields = Mapping[bytes | str, bytes | str]
StreamEntries = list[tuple[str, list[tuple[str, dict[bytes, bytes]]]]]


def _text(value: bytes | str) -> str:
    return value.decode() if isinstance(value, bytes) else value


def stream_fields(payload: StreamFields) -> dict[str, str]:
    return {_text(key): _text(value) for key, value in payload.items()}


def decode_event(payload: StreamFields) -> QueuedEvent:
    """Parse a stream entry into a queued event.

    Producers either publish one JSON document under ``event`` or ``data``, or
    spread the event over flat fields, where nested values are JSON encoded.
    """

    fields = stream_fields(payload)
    for name in ENVELOPE_FIELDS:
        if name in fields:
            return queued_event_adapter.validate_json(fields[name])

    values: dict[str, Any] = {}
    for key, raw in fields.items():
        values[key] = json.loads(raw) if raw[:1] in ("{", "[") else raw
    return queued_event_adapter.validate_python(values)


def build_dispatcher(settings: EngineSettings) -> EventDispatcher:
    """Wire the runners the same way the API dependencies do."""

    agents = get_agent_store()
    records = get_record_store()
    executor = get_step_executor(
        credentials=get_credential_store(),
        backend=get_backend(),
        settings=settings,
    )
    actions = get_action_runner(
        agents=agents,
        records=records,
        executions=get_execution_store(),
        executor=executor,
        guard=get_run_guard(),
    )
    schedules = get_schedule_runner(
        schedules=get_schedule_store(),
        agents=agents,
        records=records,
        runner=actions,
        settings=settings,
    )
    return EventDispatcher(actions, schedules)


class EventWorker:
    """Consume queued engine events from a Redis Stream consumer group.

    Every entry is acknowledged once handled.  Entries that cannot be parsed
    or whose handler raises are copied to ``<stream>:dlq`` first.
    """

    def __init__(
        self,
        redis_url: str,
        stream_key: str,
        group: str,
        consumer: str,
        *,
        dispatcher: EventDispatcher | None = None,
        batch_size: int = 8,
        block_ms: int = 5000,
    ) -> None:
        self.redis_url = redis_url
        self.stream_key = stream_key
        self.group = group
        self.consumer = consumer
        self.batch_size = batch_size
        self.block_ms = block_ms

        self._redis: Redis | None = None
        self._dispatcher = dispatcher
        self._stop_event = asyncio.Event()

    @property
    def dead_letter_stream(self) -> str:
        return f"{self.stream_key}{DLQ_SUFFIX}"

    async def run(self) -> None:
        """Initialize dependencies and process events until shutdown."""

        await self._initialize()
        try:
            while not self._stop_event.is_set():
                entries = await self._read_batch()
                if entries:
                    await self._process_entries(entries)
        finally:
            await self._close()

    def request_shutdown(self) -> None:
        self._stop_event.set()

    async def _initialize(self) -> None:
        await init_db()
        if self._dispatcher is None:
            self._dispatcher = build_dispatcher(get_settings())
        self._redis = Redis.from_url(  # pyright: ignore[reportUnknownMemberType]
            self.redis_url,
            encoding="utf-8",
            decode_responses=False,
        )
        await self._ensure_consumer_group()

    async def _ensure_consumer_group(self) -> None:
        assert self._redis is not None

        try:
            await self._redis.xgroup_create(
                name=self.stream_key,
                groupname=self.group,
                id="0-0",
                mkstream=True,
            )
        except ResponseError as exc:
            if "BUSYGROUP" not in str(exc):
                raise
            return
        logger.info(
            "Created consumer group",
            extra={"stream": self.stream_key, "group": self.group},
        )

    async def _read_batch(self) -> StreamEntries:
        assert self._redis is not None

        try:
            response = await self._redis.xreadgroup(
                groupname=self.group,
                consumername=self.consumer,
                streams={self.stream_key: ">"},
                count=self.batch_size,
                block=self.block_ms,
            )
        except Exception:  # pragma: no cover - logged and retried
            logger.exception("Failed to read from stream", extra={"stream": self.stream_key})
            await asyncio.sleep(1.0)
            return []
        return cast(StreamEntries, response or [])

    async def _process_entries(self, entries: StreamEntries) -> None:
        for _, messages in entries:
            for message_id, payload in messages:
                await self._process_message(message_id, payload)
                await self._ack(message_id)

    async def _process_message(self, message_id: str, payload: dict[bytes, bytes]) -> None:
        assert self._dispatcher is not None

        try:
            event = decode_event(payload)
            outcome = await self._dispatcher.handle_event(event)
        except Exception as exc:
            logger.exception("Failed to process event", extra={"message_id": message_id})
            await self._dead_letter(message_id, payload, exc)
            return
        logger.info(
            "Event processed",
            extra={"message_id": message_id, "type": event.type, "status": outcome.get("status")},
        )

    async def _dead_letter(
        self, message_id: str, payload: dict[bytes, bytes], exc: Exception
    ) -> None:
        assert self._redis is not None

        entry = {
            "message_id": message_id,
            "stream": self.stream_key,
            "error": str(exc),
            "payload": json.dumps(stream_fields(payload)),
        }
        try:
            await self._redis.xadd(self.dead_letter_stream, entry)  # type: ignore[arg-type]
        except Exception:  # pragma: no cover - logging only
            logger.exception("Failed to publish to DLQ", extra={"stream": self.dead_letter_stream})

    async def _ack(self, message_id: str) -> None:
        assert self._redis is not None

        try:
            await self._redis.xack(self.stream_key, self.group, message_id)
        except Exception:  # pragma: no cover - logging only
            logger.exception("Failed to ack message", extra={"message_id": message_id})

    async def _close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        await dispose_engine()


async def main() -> None:
    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))

    worker = EventWorker(
        settings.redis_url,
        settings.stream_key,
        settings.consumer_group,
        settings.consumer_name or f"{socket.gethostname()}-{os.getpid()}",
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, worker.request_shutdown)

    await worker.run()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
