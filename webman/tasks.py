"""Task handlers for the ``execute`` and ``batchExecute`` runtime tasks."""

from __future__ import annotations

import logging

from pydantic import BaseModel, ValidationError

from webman.dispatch.engine import DispatchEngine
from webman.models import BatchRequest, ErrorResult, RelayRequest, SuccessResult
from webman.runtime.protocol import RuntimeTask, TaskHandler

logger = logging.getLogger(__name__)

EXECUTE_TASK = "execute"
BATCH_EXECUTE_TASK = "batchExecute"


class TaskAdapter:
    """Maps runtime tasks onto the dispatch engine and replies with the outcome."""

    def __init__(self, engine: DispatchEngine) -> None:
        self._engine = engine

    @property
    def handlers(self) -> dict[str, TaskHandler]:
        return {
            EXECUTE_TASK: self.execute,
            BATCH_EXECUTE_TASK: self.batch_execute,
        }

    async def execute(self, task: RuntimeTask) -> None:
        try:
            request = RelayRequest.model_validate_json(task.input_data)
        except ValidationError as exc:
            await self._reply(task, "error", ErrorResult(
                message=f"err while decoding input data: {_describe(exc)}",
            ))
            return

        outcome = await self._engine.dispatch_one(request)
        if outcome.error is not None:
            await self._reply(task, "error", ErrorResult(
                message=f"err while performing the post request: {outcome.error}",
            ))
            return

        await self._reply(task, "success", SuccessResult(
            status_code=outcome.status_code, body=outcome.body,
        ))

    async def batch_execute(self, task: RuntimeTask) -> None:
        try:
            batch = BatchRequest.model_validate_json(task.input_data)
        except ValidationError as exc:
            await self._reply(task, "error", ErrorResult(
                message=f"err while decoding batch input data: {_describe(exc)}",
            ))
            return

        result = await self._engine.dispatch_batch(batch.batch)
        await self._reply(task, "batch", result)

    async def _reply(self, task: RuntimeTask, kind: str, payload: BaseModel) -> None:
        try:
            await task.reply(kind, payload)
        except Exception:
            logger.exception(
                "error while replying %r to task %r (%s)",
                kind, task.key, task.execution_id,
            )


def _describe(exc: ValidationError) -> str:
    """One-line summary of a validation error."""
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)
