"""Dispatch engine: single and batched relay calls.

Batch mode fans out one task per request and joins on all of them before
assembling the result. Outcomes are recorded in completion order, so when a
URL repeats the last call to finish owns its entry.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from webman.models import BatchResult, RelayOutcome, RelayRequest
from webman.relay.client import Relay, RelayError

logger = logging.getLogger(__name__)


class DispatchEngine:
    """Runs relay requests and collects their outcomes."""

    def __init__(self, relay: Relay) -> None:
        self._relay = relay

    async def dispatch_one(self, request: RelayRequest) -> RelayOutcome:
        try:
            status_code, body = await self._relay.post(request.url, request.body)
        except RelayError as exc:
            logger.debug("relay to %s failed: %s", request.url, exc)
            return RelayOutcome(url=request.url, error=exc)
        return RelayOutcome(url=request.url, status_code=str(status_code), body=body)

    async def dispatch_batch(self, requests: Sequence[RelayRequest]) -> BatchResult:
        result = BatchResult()
        if not requests:
            return result

        async def _dispatch_and_record(request: RelayRequest) -> None:
            result.record(await self.dispatch_one(request))

        logger.debug("dispatching batch of %d requests", len(requests))
        async with asyncio.TaskGroup() as tg:
            for request in requests:
                tg.create_task(_dispatch_and_record(request))

        logger.debug(
            "batch done: %d successes, %d errors",
            len(result.successes), len(result.errors),
        )
        return result
