"""Tests for the execute and batchExecute task handlers."""

from __future__ import annotations

import logging

import pytest

from tests.conftest import RecordingTask, StubRelay
from webman.dispatch.engine import DispatchEngine
from webman.relay.client import TransportError
from webman.tasks import BATCH_EXECUTE_TASK, EXECUTE_TASK, TaskAdapter

POST_PAYLOAD = {"test": "test"}


def _make_adapter(relay: StubRelay) -> TaskAdapter:
    return TaskAdapter(DispatchEngine(relay))


class TestExecute:
    @pytest.mark.asyncio
    async def test_success_reply(self) -> None:
        relay = StubRelay({"http://mesg.com": (200, POST_PAYLOAD)})
        task = RecordingTask({"url": "http://mesg.com", "body": POST_PAYLOAD})

        await _make_adapter(relay).execute(task)

        assert task.replies == [
            ("success", {"statusCode": "200", "body": POST_PAYLOAD}),
        ]
        assert relay.calls == [("http://mesg.com", POST_PAYLOAD)]

    @pytest.mark.asyncio
    async def test_malformed_input_replies_decode_error(self) -> None:
        relay = StubRelay({})
        task = RecordingTask("{not json")

        await _make_adapter(relay).execute(task)

        assert len(task.replies) == 1
        kind, payload = task.replies[0]
        assert kind == "error"
        assert payload["message"].startswith("err while decoding input data:")
        assert relay.calls == []

    @pytest.mark.asyncio
    async def test_missing_url_replies_decode_error(self) -> None:
        task = RecordingTask({"body": {}})
        await _make_adapter(StubRelay({})).execute(task)
        kind, payload = task.replies[0]
        assert kind == "error"
        assert "url" in payload["message"]

    @pytest.mark.asyncio
    async def test_relay_error_replies_error(self) -> None:
        relay = StubRelay({"http://down": TransportError("Post http://down: connection refused")})
        task = RecordingTask({"url": "http://down", "body": None})

        await _make_adapter(relay).execute(task)

        assert task.replies == [(
            "error",
            {"message": "err while performing the post request: Post http://down: connection refused"},
        )]

    @pytest.mark.asyncio
    async def test_reply_failure_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        relay = StubRelay({"http://a": (200, {})})
        task = RecordingTask({"url": "http://a"}, fail_reply=True)

        with caplog.at_level(logging.ERROR, logger="webman.tasks"):
            await _make_adapter(relay).execute(task)

        assert "error while replying 'success'" in caplog.text


class TestBatchExecute:
    @pytest.mark.asyncio
    async def test_batch_reply(self) -> None:
        relay = StubRelay({
            "http://mesg.com": (200, POST_PAYLOAD),
            "http://mesg.tech": (200, POST_PAYLOAD),
        })
        task = RecordingTask(
            {"batch": [
                {"url": "http://mesg.com", "body": POST_PAYLOAD},
                {"url": "http://mesg.tech", "body": POST_PAYLOAD},
            ]},
            key=BATCH_EXECUTE_TASK,
        )

        await _make_adapter(relay).batch_execute(task)

        kind, payload = task.replies[0]
        assert kind == "batch"
        assert payload["errors"] == {}
        for url in ("http://mesg.com", "http://mesg.tech"):
            assert payload["successes"][url] == {"statusCode": "200", "body": POST_PAYLOAD}

    @pytest.mark.asyncio
    async def test_bare_list_input(self) -> None:
        relay = StubRelay({
            "http://a": (200, {"x": 1}),
            "http://b": TransportError("Post http://b: connection refused"),
        })
        task = RecordingTask([{"url": "http://a"}, {"url": "http://b"}], key=BATCH_EXECUTE_TASK)

        await _make_adapter(relay).batch_execute(task)

        assert task.replies == [("batch", {
            "successes": {"http://a": {"statusCode": "200", "body": {"x": 1}}},
            "errors": {"http://b": {"message": "Post http://b: connection refused"}},
        })]

    @pytest.mark.asyncio
    async def test_empty_batch(self) -> None:
        task = RecordingTask({"batch": []}, key=BATCH_EXECUTE_TASK)
        await _make_adapter(StubRelay({})).batch_execute(task)
        assert task.replies == [("batch", {"successes": {}, "errors": {}})]

    @pytest.mark.asyncio
    async def test_missing_batch_replies_empty_batch(self) -> None:
        task = RecordingTask({}, key=BATCH_EXECUTE_TASK)
        await _make_adapter(StubRelay({})).batch_execute(task)
        assert task.replies == [("batch", {"successes": {}, "errors": {}})]

    @pytest.mark.asyncio
    async def test_malformed_input_replies_error(self) -> None:
        task = RecordingTask({"batch": "nope"}, key=BATCH_EXECUTE_TASK)
        await _make_adapter(StubRelay({})).batch_execute(task)
        kind, payload = task.replies[0]
        assert kind == "error"
        assert payload["message"].startswith("err while decoding batch input data:")


def test_handlers_expose_both_task_names() -> None:
    adapter = _make_adapter(StubRelay({}))
    assert set(adapter.handlers) == {EXECUTE_TASK, BATCH_EXECUTE_TASK}
    assert EXECUTE_TASK == "execute"
    assert BATCH_EXECUTE_TASK == "batchExecute"
