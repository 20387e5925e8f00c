"""In-process task runtime.

Tasks are queued with :meth:`InMemoryTaskRuntime.submit` and handed to the
registered handlers by :meth:`InMemoryTaskRuntime.listen_tasks`, each on its
own asyncio task. The most recent emitted events are kept and logged.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

from webman.models import ErrorResult, dump_payload
from webman.runtime.protocol import ReplyDeliveryError, TaskHandler

logger = logging.getLogger(__name__)

DEFAULT_MAX_EVENTS = 1000


class RuntimeClosedError(Exception):
    """Raised when submitting or emitting on a closed runtime."""


@dataclass
class EmittedEvent:
    name: str
    data: dict[str, Any]


@dataclass
class TaskReply:
    kind: str
    data: dict[str, Any]


@dataclass
class InMemoryTask:
    key: str
    input_data: str
    result: asyncio.Future[TaskReply]
    execution_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    async def reply(self, kind: str, payload: BaseModel) -> None:
        if self.result.done():
            raise ReplyDeliveryError(f"task {self.execution_id} already answered")
        self.result.set_result(TaskReply(kind=kind, data=dump_payload(payload)))


class InMemoryTaskRuntime:
    """Task runtime living entirely inside the current event loop."""

    def __init__(self, max_events: int = DEFAULT_MAX_EVENTS) -> None:
        if max_events < 1:
            raise ValueError("max_events must be at least 1")
        self._queue: asyncio.Queue[InMemoryTask | None] = asyncio.Queue()
        self._event_queue: asyncio.Queue[EmittedEvent] = asyncio.Queue(maxsize=max_events)
        self._events: deque[EmittedEvent] = deque(maxlen=max_events)
        self._running: set[asyncio.Task[None]] = set()
        self._closed = False

    @property
    def events(self) -> list[EmittedEvent]:
        """Emitted events, oldest first, capped at ``max_events``."""
        return list(self._events)

    @property
    def closed(self) -> bool:
        return self._closed

    async def submit(
        self, key: str, input_data: str | bytes,
    ) -> asyncio.Future[TaskReply]:
        """Queue a task and return the future its reply will resolve."""
        if self._closed:
            raise RuntimeClosedError("runtime is closed")
        if isinstance(input_data, bytes):
            input_data = input_data.decode()
        task = InMemoryTask(
            key=key,
            input_data=input_data,
            result=asyncio.get_running_loop().create_future(),
        )
        await self._queue.put(task)
        return task.result

    async def listen_tasks(self, handlers: Mapping[str, TaskHandler]) -> None:
        while True:
            task = await self._queue.get()
            if task is None:
                break
            job = asyncio.create_task(self._handle(handlers, task))
            self._running.add(job)
            job.add_done_callback(self._running.discard)

        # let in-flight handlers deliver their replies
        if self._running:
            await asyncio.gather(*self._running, return_exceptions=True)

    async def _handle(self, handlers: Mapping[str, TaskHandler], task: InMemoryTask) -> None:
        handler = handlers.get(task.key)
        if handler is None:
            logger.warning("no handler registered for task %r", task.key)
            await task.reply("error", ErrorResult(message=f"unknown task {task.key!r}"))
            return
        try:
            await handler(task)
        except Exception:
            logger.exception("task %r (%s) failed", task.key, task.execution_id)
            if not task.result.done():
                await task.reply("error", ErrorResult(message="internal task failure"))

    async def emit_event(self, name: str, payload: BaseModel) -> None:
        if self._closed:
            raise RuntimeClosedError("runtime is closed")
        event = EmittedEvent(name=name, data=dump_payload(payload))
        self._events.append(event)
        if self._event_queue.full():
            # drop the oldest unread event
            self._event_queue.get_nowait()
        self._event_queue.put_nowait(event)
        logger.info("event %s emitted", name)

    async def next_event(self, timeout: float | None = None) -> EmittedEvent:
        """Wait for the next emitted event."""
        return await asyncio.wait_for(self._event_queue.get(), timeout)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._queue.put(None)
