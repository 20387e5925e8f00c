"""Interfaces of the external task/event runtime."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import Protocol

from pydantic import BaseModel


class ReplyDeliveryError(Exception):
    """Raised by a task when its reply cannot be delivered."""


class RuntimeTask(Protocol):
    """A task received from the runtime, answered exactly once."""

    key: str
    execution_id: str
    input_data: str

    async def reply(self, kind: str, payload: BaseModel) -> None: ...


TaskHandler = Callable[[RuntimeTask], Awaitable[None]]


class EventPublisher(Protocol):
    async def emit_event(self, name: str, payload: BaseModel) -> None: ...


class TaskRuntime(EventPublisher, Protocol):
    """Runtime connection: task stream in, events and replies out."""

    async def listen_tasks(self, handlers: Mapping[str, TaskHandler]) -> None:
        """Dispatch incoming tasks to ``handlers`` until the connection closes."""
        ...

    async def close(self) -> None: ...
