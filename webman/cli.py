"""Click CLI for running the bridge and issuing one-off relay calls."""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import sys
from pathlib import Path

import click
from pydantic import ValidationError

from webman.config import ConfigurationError, ServiceConfig
from webman.dispatch.engine import DispatchEngine
from webman.models import (
    BatchRequest,
    BatchResult,
    ErrorResult,
    RelayOutcome,
    RelayRequest,
    SuccessResult,
    dump_payload,
)
from webman.relay.client import DEFAULT_TIMEOUT, HttpRelay
from webman.runtime import InMemoryTaskRuntime, TaskRuntime, load_runtime_factory
from webman.service import Service
from webman.webhook.server import WebhookServerError

_LOG_FORMAT = "service-webman: %(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=_LOG_FORMAT, force=True)


@click.group()
@click.option(
    "--log-level",
    default="INFO",
    envvar="WEBMAN_LOG_LEVEL",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Log level.",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str) -> None:
    """Webhook and HTTP POST bridge for a task runtime."""
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level.upper()
    configure_logging(log_level)


@cli.command()
@click.option("--endpoint", default=None, help="Webhook path, e.g. /webhook.")
@click.option("--addr", default=None, help="Webhook listen address, e.g. :4000.")
@click.option("--timeout", type=float, default=None, help="Outbound HTTP timeout in seconds.")
@click.option("--grace", type=float, default=None, help="Shutdown grace period in seconds.")
@click.option("--runtime", default=None, help="Runtime factory as module:callable.")
@click.pass_context
def serve(
    ctx: click.Context,
    endpoint: str | None,
    addr: str | None,
    timeout: float | None,
    grace: float | None,
    runtime: str | None,
) -> None:
    """Run the service until SIGINT or SIGTERM."""
    try:
        config = ServiceConfig.from_env(
            webhook_endpoint=endpoint,
            webhook_addr=addr,
            http_timeout=timeout,
            shutdown_grace=grace,
            runtime=runtime,
            log_level=ctx.obj["log_level"],
        )
        asyncio.run(_serve(config))
    except (ConfigurationError, WebhookServerError) as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo("gracefully stopped", err=True)


def _build_runtime(config: ServiceConfig) -> TaskRuntime:
    if config.runtime is None:
        return InMemoryTaskRuntime()
    try:
        factory = load_runtime_factory(config.runtime)
    except (ImportError, ValueError) as exc:
        raise ConfigurationError(f"cannot load runtime {config.runtime!r}: {exc}") from exc
    return factory()


async def _serve(config: ServiceConfig) -> None:
    service = Service(config, _build_runtime(config))
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda: asyncio.ensure_future(service.close()))
    try:
        await service.run()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)


@cli.command()
@click.argument("url")
@click.option("--data", default="null", help="JSON request body.")
@click.option("--timeout", type=float, default=DEFAULT_TIMEOUT, show_default=True)
def post(url: str, data: str, timeout: float) -> None:
    """POST a JSON body to URL and print the result."""
    try:
        body = json.loads(data)
    except ValueError as exc:
        raise click.BadParameter(f"not valid JSON: {exc}", param_hint="--data") from exc

    outcome = asyncio.run(_dispatch_one(RelayRequest(url=url, body=body), timeout))
    if outcome.error is not None:
        click.echo(json.dumps(dump_payload(ErrorResult(message=str(outcome.error)))))
        sys.exit(1)
    result = SuccessResult(status_code=outcome.status_code, body=outcome.body)
    click.echo(json.dumps(dump_payload(result), indent=2))


async def _dispatch_one(request: RelayRequest, timeout: float) -> RelayOutcome:
    async with HttpRelay(timeout=timeout) as relay:
        return await DispatchEngine(relay).dispatch_one(request)


@cli.command()
@click.argument("batch_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--timeout", type=float, default=DEFAULT_TIMEOUT, show_default=True)
def batch(batch_file: Path, timeout: float) -> None:
    """POST every request in BATCH_FILE concurrently and print the results."""
    try:
        requests = BatchRequest.model_validate_json(batch_file.read_text())
    except ValidationError as exc:
        raise click.ClickException(f"invalid batch file {batch_file}: {exc}") from exc

    result = asyncio.run(_dispatch_batch(requests, timeout))
    click.echo(json.dumps(dump_payload(result), indent=2))


async def _dispatch_batch(requests: BatchRequest, timeout: float) -> BatchResult:
    async with HttpRelay(timeout=timeout) as relay:
        return await DispatchEngine(relay).dispatch_batch(requests.batch)
