"""Shared Pydantic data models for service-webman."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

if TYPE_CHECKING:
    from webman.relay.client import RelayError

# --- Relay Models ---


class RelayRequest(BaseModel):
    """One outbound POST: target URL plus the JSON body to send."""

    model_config = ConfigDict(frozen=True)

    url: str
    body: Any = None


class BatchRequest(BaseModel):
    """Input of the ``batchExecute`` task.

    Accepts ``{"batch": [...]}`` as well as a bare list of requests. A missing
    or null batch is empty.
    """

    model_config = ConfigDict(frozen=True)

    batch: list[RelayRequest] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _wrap_bare_list(cls, data: Any) -> Any:
        if data is None:
            return {"batch": []}
        if isinstance(data, list):
            return {"batch": data}
        if isinstance(data, dict) and data.get("batch", []) is None:
            return {**data, "batch": []}
        return data


@dataclass
class RelayOutcome:
    """Result of a single relay call, tagged with the URL it was sent to."""

    url: str
    status_code: str = ""
    body: Any = None
    error: RelayError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


# --- Reply Models ---


class SuccessResult(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    status_code: str = Field(alias="statusCode")
    body: Any = None


class ErrorResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class BatchResult(BaseModel):
    """Keyed outcome of a batch dispatch.

    A URL is present in at most one of the two maps. Recording a later
    outcome for the same URL replaces whatever was recorded before.
    """

    successes: dict[str, SuccessResult] = Field(default_factory=dict)
    errors: dict[str, ErrorResult] = Field(default_factory=dict)

    def record(self, outcome: RelayOutcome) -> None:
        if outcome.error is not None:
            self.successes.pop(outcome.url, None)
            self.errors[outcome.url] = ErrorResult(message=str(outcome.error))
            return
        self.errors.pop(outcome.url, None)
        self.successes[outcome.url] = SuccessResult(
            status_code=outcome.status_code, body=outcome.body,
        )

    def __len__(self) -> int:
        return len(self.successes) + len(self.errors)


# --- Webhook Models ---


class WebhookEnvelope(BaseModel):
    """Event payload published for every accepted webhook call."""

    model_config = ConfigDict(frozen=True)

    date: int
    id: str
    body: Any = None

    @classmethod
    def create(cls, body: Any) -> WebhookEnvelope:
        return cls(date=int(time.time()), id=str(uuid.uuid4()), body=body)


def dump_payload(payload: BaseModel) -> dict[str, Any]:
    """Serialize a reply or event payload with its wire field names."""
    return payload.model_dump(mode="json", by_alias=True)
