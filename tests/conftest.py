"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterator

import pytest

from probebeat.checks import CHECK_TYPES, Check, register_check
from probebeat.definitions import CheckDefinition


class FakeSocket:
    """Scripted stream socket: ``greeting`` is readable at once, each
    ``sendall`` makes the next reply readable."""

    def __init__(self, greeting: bytes = b"", replies: list[bytes] | None = None) -> None:
        self._buffer = greeting
        self._replies = list(replies or [])
        self.sent: list[bytes] = []
        self.closed = False

    def recv(self, n: int) -> bytes:
        chunk, self._buffer = self._buffer[:n], self._buffer[n:]
        return chunk

    def sendall(self, data: bytes) -> None:
        self.sent.append(data)
        if self._replies:
            self._buffer += self._replies.pop(0)

    def settimeout(self, timeout: float) -> None:
        pass

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> FakeSocket:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


@pytest.fixture
def make_definition() -> Callable[..., CheckDefinition]:
    def _make(
        check_id: str = "c1",
        type: str = "noop",
        definition: str = "{}",
        attributes: dict[str, str] | None = None,
        group: str = "team01",
    ) -> CheckDefinition:
        return CheckDefinition(
            id=check_id,
            name=f"Check {check_id}",
            type=type,
            definition=definition,
            group=group,
            score_weight=1,
            attributes=attributes or {},
        )

    return _make


@pytest.fixture
def register() -> Iterator[Callable[[type[Check]], type[Check]]]:
    """Register throwaway check types for the duration of a test."""
    added: list[str] = []

    def _register(cls: type[Check]) -> type[Check]:
        register_check(cls)
        added.append(cls.check_type)
        return cls

    yield _register
    for check_type in added:
        CHECK_TYPES.pop(check_type, None)
