"""Task runtime boundary for service-webman.

This module provides:
- The runtime protocols the service consumes
- An in-process runtime implementation
- Loading a runtime factory from a ``module:callable`` path
"""

from __future__ import annotations

import importlib
from collections.abc import Callable

from webman.runtime.memory import (
    EmittedEvent,
    InMemoryTask,
    InMemoryTaskRuntime,
    RuntimeClosedError,
    TaskReply,
)
from webman.runtime.protocol import (
    EventPublisher,
    ReplyDeliveryError,
    RuntimeTask,
    TaskHandler,
    TaskRuntime,
)


def load_runtime_factory(path: str) -> Callable[[], TaskRuntime]:
    """Resolve ``"package.module:factory"`` to the factory callable."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"runtime factory must look like 'module:callable', got {path!r}")
    module = importlib.import_module(module_name)
    try:
        factory = getattr(module, attr)
    except AttributeError as exc:
        raise ValueError(f"module {module_name!r} has no attribute {attr!r}") from exc
    if not callable(factory):
        raise ValueError(f"{path!r} is not callable")
    return factory


__all__ = [
    # Exceptions
    "ReplyDeliveryError",
    "RuntimeClosedError",
    # Protocols
    "EventPublisher",
    "RuntimeTask",
    "TaskHandler",
    "TaskRuntime",
    # In-memory runtime
    "EmittedEvent",
    "InMemoryTask",
    "InMemoryTaskRuntime",
    "TaskReply",
    "load_runtime_factory",
]
