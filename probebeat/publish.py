"""Publication sinks — where finished check events go.

A sink only needs ``publish(event)`` and ``close()``.  Sink failures are
the caller's to log; they never affect other events of the pass.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Protocol

import httpx
from pydantic import BaseModel

from probebeat.checks.schema import CheckResult

logger = logging.getLogger(__name__)


class Event(BaseModel):
    """Normalized outbound record, one per check per pass."""

    timestamp: str
    type: str
    id: str
    name: str
    group: str
    score_weight: float
    check_type: str
    passed: bool
    message: str
    details: dict[str, Any] | None = None

    @classmethod
    def from_result(cls, result: CheckResult, event_type: str = "dynamicbeat") -> Event:
        details = result.details
        if result.timed_out:
            details = {**(details or {}), "timed_out": True}
        return cls(
            timestamp=result.timestamp,
            type=event_type,
            id=result.id,
            name=result.name,
            group=result.group,
            score_weight=result.score_weight,
            check_type=result.check_type,
            passed=result.passed,
            message=result.message,
            details=details,
        )


class Publisher(Protocol):
    def publish(self, event: Event) -> None: ...

    def close(self) -> None: ...


class LogPublisher:
    """Writes each event to the log."""

    def publish(self, event: Event) -> None:
        logger.info(
            "%s %s/%s: %s %s",
            "PASS" if event.passed else "FAIL",
            event.group or "-", event.id, event.check_type, event.message,
        )

    def close(self) -> None:
        pass


class MemoryPublisher:
    """Keeps every published event in a list."""

    def __init__(self) -> None:
        self.events: list[Event] = []
        self._lock = threading.Lock()

    def publish(self, event: Event) -> None:
        with self._lock:
            self.events.append(event)

    def close(self) -> None:
        pass


class HttpPublisher:
    """POSTs each event as JSON to a collector endpoint."""

    def __init__(
        self,
        url: str,
        token: str = "",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.url = url
        self._client = httpx.Client(timeout=timeout, headers=headers, transport=transport)

    def publish(self, event: Event) -> None:
        try:
            resp = self._client.post(self.url, json=event.model_dump())
        except httpx.HTTPError as exc:
            logger.warning("Publishing event %s failed: %s", event.id, exc)
            return
        if resp.status_code >= 300:
            logger.warning("Collector returned %d for %s: %s", resp.status_code, event.id, resp.text[:200])

    def close(self) -> None:
        self._client.close()


def create_publisher(kind: str, url: str = "", token: str = "") -> Publisher:
    """Build the sink named by configuration."""
    if kind == "log":
        return LogPublisher()
    if kind == "memory":
        return MemoryPublisher()
    if kind == "http":
        if not url:
            raise ValueError("HTTP publisher requires a publish_url")
        return HttpPublisher(url, token=token)
    raise ValueError(f"Unknown publisher: {kind}")
