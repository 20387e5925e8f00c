"""Shared test fixtures for service-webman."""

from __future__ import annotations

import asyncio
import json
import socket
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from pydantic import BaseModel

from webman.models import RelayRequest
from webman.relay.client import HttpRelay, RelayError
from webman.runtime import InMemoryTaskRuntime
from webman.runtime.protocol import ReplyDeliveryError


@pytest.fixture
def memory_runtime() -> InMemoryTaskRuntime:
    return InMemoryTaskRuntime()


@pytest.fixture
def free_port() -> int:
    """A port nothing is listening on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


# --- Factory functions for test data ---


def make_relay_request(**kwargs: Any) -> RelayRequest:
    """Factory for RelayRequest with sensible defaults."""
    defaults: dict[str, Any] = {
        "url": "http://target.test/hook",
        "body": {"test": "test"},
    }
    defaults.update(kwargs)
    return RelayRequest(**defaults)


class StubRelay:
    """Relay double answering from a per-URL table.

    Values are either ``(status_code, body)`` tuples or a ``RelayError`` to
    raise. ``delays`` holds per-URL sleeps to force completion order.
    """

    def __init__(
        self,
        responses: dict[str, tuple[int, Any] | RelayError],
        delays: dict[str, float] | None = None,
    ) -> None:
        self._responses = responses
        self._delays = delays or {}
        self.calls: list[tuple[str, Any]] = []

    async def post(self, url: str, body: Any) -> tuple[int, Any]:
        self.calls.append((url, body))
        await asyncio.sleep(self._delays.get(url, 0))
        response = self._responses[url]
        if isinstance(response, RelayError):
            raise response
        return response


def make_mock_relay(handler: Any, timeout: float = 10.0) -> HttpRelay:
    """HttpRelay wired to an ``httpx.MockTransport`` handler."""
    return HttpRelay(timeout=timeout, transport=httpx.MockTransport(handler))


def json_handler(status_code: int = 200, payload: Any = None) -> Any:
    """MockTransport handler answering every request with a fixed JSON body."""

    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json=payload)

    return _handler


class RecordingTask:
    """RuntimeTask double that records its replies."""

    def __init__(
        self,
        input_data: Any,
        key: str = "execute",
        fail_reply: bool = False,
    ) -> None:
        self.key = key
        self.execution_id = "execution-id"
        self.input_data = input_data if isinstance(input_data, str) else json.dumps(input_data)
        self.replies: list[tuple[str, dict[str, Any]]] = []
        self._fail_reply = fail_reply

    async def reply(self, kind: str, payload: BaseModel) -> None:
        if self._fail_reply:
            raise ReplyDeliveryError("closed connection")
        self.replies.append((kind, payload.model_dump(mode="json", by_alias=True)))


@pytest.fixture
def failing_publisher() -> MagicMock:
    publisher = MagicMock()
    publisher.emit_event = AsyncMock(side_effect=ConnectionError("runtime unavailable"))
    return publisher
