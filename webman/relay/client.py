"""Outbound HTTP relay: one JSON POST per call, JSON response decoded.

Only network, serialization and decode failures are relay errors. Any HTTP
status the target answers with is passed through to the caller.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class RelayError(Exception):
    """Base class for failures of a single relay call."""


class SerializationError(RelayError):
    """Raised when the request body cannot be encoded as JSON."""


class TransportError(RelayError):
    """Raised when the connection fails or the client timeout elapses."""


class DecodeError(RelayError):
    """Raised when the response body is not valid JSON."""


class Relay(Protocol):
    async def post(self, url: str, body: Any) -> tuple[int, Any]: ...


class HttpRelay:
    """JSON POST client shared by every concurrent relay call."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        # every batch request gets its own connection; no pool cap
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
            limits=httpx.Limits(max_connections=None, max_keepalive_connections=20),
        )

    @property
    def timeout(self) -> float:
        return self._timeout

    async def post(self, url: str, body: Any) -> tuple[int, Any]:
        """POST ``body`` as JSON to ``url`` and return (status code, decoded body)."""
        try:
            content = json.dumps(body, allow_nan=False).encode()
        except (TypeError, ValueError) as exc:
            raise SerializationError(f"cannot encode request body for {url}: {exc}") from exc

        try:
            # caps the whole exchange, including a slowly streamed body
            async with asyncio.timeout(self._timeout):
                resp = await self._client.post(
                    url,
                    content=content,
                    headers={"Content-Type": "application/json"},
                )
        except (TimeoutError, httpx.TimeoutException) as exc:
            raise TransportError(
                f"Post {url}: timeout after {self._timeout:g}s",
            ) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise TransportError(f"Post {url}: {str(exc) or type(exc).__name__}") from exc

        try:
            data = resp.json()
        except ValueError as exc:
            raise DecodeError(
                f"invalid JSON response from {url} (status {resp.status_code}): {exc}",
            ) from exc

        logger.debug("POST %s -> %d", url, resp.status_code)
        return resp.status_code, data

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HttpRelay:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
