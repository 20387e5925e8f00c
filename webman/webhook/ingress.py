"""Webhook ingress: turns inbound JSON bodies into ``onRequest`` events."""

from __future__ import annotations

import json
import logging
from typing import Any

from webman.models import WebhookEnvelope
from webman.runtime.protocol import EventPublisher

logger = logging.getLogger(__name__)

ON_REQUEST_EVENT = "onRequest"


class PayloadError(Exception):
    """Raised when a webhook body is not a JSON document."""

    def __init__(self, message: str = "json data payload expected") -> None:
        super().__init__(message)


class WebhookIngress:
    """Decodes webhook bodies and publishes them as envelopes.

    Publishing is best effort: the caller has already been answered by the
    time an envelope is published, so failures only reach the log.
    """

    def __init__(
        self,
        publisher: EventPublisher,
        event_name: str = ON_REQUEST_EVENT,
    ) -> None:
        self._publisher = publisher
        self._event_name = event_name

    def accept(self, raw: bytes) -> WebhookEnvelope:
        try:
            body: Any = json.loads(raw)
        except ValueError as exc:
            raise PayloadError() from exc
        return WebhookEnvelope.create(body)

    async def publish(self, envelope: WebhookEnvelope) -> None:
        try:
            await self._publisher.emit_event(self._event_name, envelope)
        except Exception:
            logger.exception("error while emitting event %s (%s)", self._event_name, envelope.id)
