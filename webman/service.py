"""Service wiring: relay, dispatch engine, task handlers and webhook server."""

from __future__ import annotations

import asyncio
import logging

from webman.config import ConfigurationError, ServiceConfig
from webman.dispatch.engine import DispatchEngine
from webman.relay.client import HttpRelay, Relay
from webman.runtime.protocol import TaskRuntime
from webman.tasks import TaskAdapter
from webman.webhook.app import create_webhook_app
from webman.webhook.ingress import WebhookIngress
from webman.webhook.server import WebhookServer

logger = logging.getLogger(__name__)


class Service:
    """Bridges a task runtime with outbound HTTP calls and an inbound webhook."""

    def __init__(
        self,
        config: ServiceConfig,
        runtime: TaskRuntime,
        relay: Relay | None = None,
    ) -> None:
        if not config.webhook_endpoint or not config.webhook_addr:
            raise ConfigurationError("webhook configurations not set")

        self.config = config
        self._runtime = runtime
        self._http_relay: HttpRelay | None = None
        if relay is None:
            self._http_relay = HttpRelay(timeout=config.http_timeout)
            relay = self._http_relay
        self.engine = DispatchEngine(relay)
        self.tasks = TaskAdapter(self.engine)
        self.ingress = WebhookIngress(runtime)
        self.webhook = WebhookServer(
            create_webhook_app(config.webhook_endpoint, self.ingress),
            config.webhook_addr,
            log_level=config.log_level,
        )
        self._closing: asyncio.Future[None] | None = None

    async def run(self) -> None:
        """Serve until the task listener or the webhook server stops.

        Whatever stopped first is re-raised after everything is closed.
        """
        running: list[asyncio.Task[None]] = []
        try:
            await self.webhook.start()
            running.append(asyncio.create_task(self._runtime.listen_tasks(self.tasks.handlers)))
            running.append(asyncio.create_task(self.webhook.wait_closed()))
            done, _ = await asyncio.wait(running, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                task.result()
        finally:
            await self.close()
            if running:
                await asyncio.wait(running, timeout=self.config.grace_period)
            for task in running:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*running, return_exceptions=True)

    async def close(self) -> None:
        """Stop the webhook server and close the runtime and HTTP client.

        Concurrent and repeated calls all wait for the same shutdown.
        """
        if self._closing is None:
            self._closing = asyncio.ensure_future(self._close())
        await asyncio.shield(self._closing)

    async def _close(self) -> None:
        await self.webhook.shutdown(self.config.grace_period)
        try:
            await self._runtime.close()
        except Exception:
            logger.exception("error while closing the task runtime")
        if self._http_relay is not None:
            await self._http_relay.aclose()
