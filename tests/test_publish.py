"""Tests for outbound events and publication sinks."""

from __future__ import annotations

import json
import logging

import httpx
import pytest

from probebeat.checks import CheckResult
from probebeat.publish import (
    Event,
    HttpPublisher,
    LogPublisher,
    MemoryPublisher,
    create_publisher,
)


def _result(**overrides) -> CheckResult:
    fields = dict(
        id="c1", name="Check 1", group="team01", score_weight=1.5,
        check_type="ssh", passed=True, message="ok",
    )
    fields.update(overrides)
    return CheckResult(**fields)


# ── Event ────────────────────────────────────────────────────────────────────


class TestEvent:
    def test_from_result(self) -> None:
        event = Event.from_result(_result(details={"output": "x"}), "dynamicbeat")
        assert event.type == "dynamicbeat"
        assert event.id == "c1"
        assert event.group == "team01"
        assert event.score_weight == 1.5
        assert event.details == {"output": "x"}
        assert event.timestamp

    def test_timed_out_flag_in_details(self) -> None:
        result = _result(passed=False, timed_out=True, details={"status_code": 0})
        event = Event.from_result(result)
        assert event.details == {"status_code": 0, "timed_out": True}
        assert result.details == {"status_code": 0}  # result untouched


# ── Publishers ───────────────────────────────────────────────────────────────


class TestPublishers:
    def test_memory(self) -> None:
        pub = MemoryPublisher()
        pub.publish(Event.from_result(_result()))
        assert len(pub.events) == 1

    def test_log(self, caplog) -> None:
        with caplog.at_level(logging.INFO, logger="probebeat.publish"):
            LogPublisher().publish(Event.from_result(_result(passed=False, message="refused")))
        assert "FAIL team01/c1: ssh refused" in caplog.text

    def test_http_posts_json(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201)

        pub = HttpPublisher("http://collector/events", token="t0k", transport=httpx.MockTransport(handler))
        pub.publish(Event.from_result(_result()))
        pub.close()

        (request,) = seen
        assert request.headers["Authorization"] == "Bearer t0k"
        body = json.loads(request.content)
        assert body["id"] == "c1"
        assert body["passed"] is True

    def test_http_errors_are_logged(self, caplog) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        pub = HttpPublisher("http://collector/events", transport=httpx.MockTransport(handler))
        with caplog.at_level(logging.WARNING, logger="probebeat.publish"):
            pub.publish(Event.from_result(_result()))
        assert "Publishing event c1 failed" in caplog.text

    def test_create_publisher(self) -> None:
        assert isinstance(create_publisher("log"), LogPublisher)
        assert isinstance(create_publisher("http", "http://collector"), HttpPublisher)
        with pytest.raises(ValueError):
            create_publisher("http")
        with pytest.raises(ValueError):
            create_publisher("kafka")
