"""Pass scheduler — runs every check definition concurrently, once per pass.

A pass borrows the definition list, renders and initializes one Check
per definition, launches each on a worker thread with its own deadline,
gives the list back, waits for every launched check to report, then
drains the result queue and publishes one event per result.

The deadline is cooperative: a check that never returns stalls its pass
(other checks still finish and their results stay buffered).
"""

from __future__ import annotations

import asyncio
import logging
import queue
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from probebeat.checks import (
    CheckResult,
    CheckValidationError,
    Deadline,
    DefinitionParseError,
    UnknownCheckTypeError,
    unpack_definition,
)
from probebeat.config import settings
from probebeat.definitions import CheckDefinition, DefinitionHandoff, DefinitionStore
from probebeat.publish import Event, Publisher

logger = logging.getLogger(__name__)


class WaitGroup:
    """Counter that blocks ``wait`` until every ``add`` has a matching ``done``."""

    def __init__(self) -> None:
        self._count = 0
        self._cond = threading.Condition()

    def add(self, n: int = 1) -> None:
        with self._cond:
            self._count += n
            if self._count < 0:
                raise ValueError("negative WaitGroup counter")
            if self._count == 0:
                self._cond.notify_all()

    def done(self) -> None:
        self.add(-1)

    def wait(self, timeout: float | None = None) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: self._count == 0, timeout=timeout)

    @property
    def count(self) -> int:
        with self._cond:
            return self._count


@dataclass
class PassReport:
    """Summary of one completed pass."""

    started_at: str
    duration_ms: float
    total: int
    passed: int
    failed: int
    skipped: int  # definitions that never became a running check


def rejected_result(definition: CheckDefinition, error: Exception) -> CheckResult:
    """Failed result standing in for a definition that could not be launched."""
    kind = {
        UnknownCheckTypeError: "unknown_type",
        DefinitionParseError: "parse",
        CheckValidationError: "validation",
    }.get(type(error), "definition")
    details: dict[str, Any] = {"error": kind}
    if isinstance(error, CheckValidationError):
        details["field"] = error.field
    return CheckResult(
        id=definition.id,
        name=definition.name,
        group=definition.group,
        score_weight=definition.score_weight,
        check_type=definition.type,
        passed=False,
        message=str(error),
        details=details,
    )


class PassRunner:
    """Executes passes over the definitions held by a hand-off."""

    def __init__(
        self,
        handoff: DefinitionHandoff,
        publisher: Publisher,
        pass_timeout: float | None = None,
        connect_timeout: float | None = None,
        max_workers: int | None = None,
        event_type: str | None = None,
    ) -> None:
        self.handoff = handoff
        self.publisher = publisher
        self.pass_timeout = pass_timeout if pass_timeout is not None else settings.pass_timeout
        self.connect_timeout = connect_timeout if connect_timeout is not None else settings.connect_timeout
        self.event_type = event_type or settings.event_type
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or settings.max_workers,
            thread_name_prefix="check",
        )

    def run_pass(self) -> PassReport:
        """Run every definition once and publish all results."""
        started = datetime.now()
        t0 = time.perf_counter()

        definitions = self.handoff.borrow()
        # Sized so that no check ever blocks on put
        results: queue.Queue[CheckResult] = queue.Queue(maxsize=max(1, len(definitions)))
        wg = WaitGroup()
        skipped = 0

        try:
            for definition in definitions:
                try:
                    check = unpack_definition(definition)
                except (UnknownCheckTypeError, DefinitionParseError, CheckValidationError) as e:
                    logger.warning("%s", e)
                    results.put_nowait(rejected_result(definition, e))
                    skipped += 1
                    continue
                except Exception as e:
                    logger.exception("Could not build check %s", definition.id)
                    results.put_nowait(rejected_result(definition, e))
                    skipped += 1
                    continue

                check.connect_timeout = self.connect_timeout
                wg.add(1)
                try:
                    self._executor.submit(check.run, Deadline(self.pass_timeout), wg, results)
                except RuntimeError as e:
                    wg.done()
                    results.put_nowait(check.fail(f"Could not start check: {e}"))
        finally:
            self.handoff.give_back(definitions)

        wg.wait()
        logger.info("Checks started at %s have finished", started.strftime("%H:%M:%S.%f")[:-3])

        passed = failed = 0
        while True:
            try:
                result = results.get_nowait()
            except queue.Empty:
                break
            if result.passed:
                passed += 1
            else:
                failed += 1
            try:
                self.publisher.publish(Event.from_result(result, self.event_type))
            except Exception:
                logger.exception("Publishing result for %s failed", result.id)

        return PassReport(
            started_at=started.isoformat(),
            duration_ms=round((time.perf_counter() - t0) * 1000, 1),
            total=passed + failed,
            passed=passed,
            failed=failed,
            skipped=skipped,
        )

    def shutdown(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait)


class BeatScheduler:
    """Runs a pass every ``interval`` seconds and keeps definitions fresh.

    Lifecycle:
        scheduler = BeatScheduler(store, runner)
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        store: DefinitionStore,
        runner: PassRunner,
        interval: float | None = None,
        refresh_interval: float | None = None,
        on_report: Callable[[PassReport], Any] | None = None,
    ) -> None:
        self.store = store
        self.runner = runner
        self.interval = interval if interval is not None else settings.pass_interval
        self.refresh_interval = refresh_interval if refresh_interval is not None else settings.refresh_interval
        self.on_report = on_report
        self._tasks: list[asyncio.Task[None]] = []
        self._passes: set[asyncio.Future[PassReport]] = set()
        self._running = False

    async def start(self) -> None:
        """Start the pass and refresh loops."""
        if self._running:
            return
        self._running = True
        self._tasks = [
            asyncio.create_task(self._pass_loop(), name="beat-passes"),
            asyncio.create_task(self._refresh_loop(), name="beat-refresh"),
        ]
        logger.info(
            "Beat scheduler started: pass every %ss, refresh every %ss",
            self.interval, self.refresh_interval,
        )

    async def stop(self) -> None:
        """Stop launching passes and wait for the ones in flight."""
        self._running = False
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        if self._passes:
            await asyncio.gather(*self._passes, return_exceptions=True)
        logger.info("Beat scheduler stopped")

    async def run_once(self) -> PassReport:
        """Run one pass now (manual trigger)."""
        loop = asyncio.get_running_loop()
        report = await loop.run_in_executor(None, self.runner.run_pass)
        self._report(report)
        return report

    def _report(self, report: PassReport) -> None:
        logger.debug(
            "Pass %s: %d passed, %d failed (%d skipped) in %.0fms",
            report.started_at, report.passed, report.failed, report.skipped, report.duration_ms,
        )
        if self.on_report:
            try:
                self.on_report(report)
            except Exception:
                logger.exception("Pass report callback error")

    def _on_pass_done(self, fut: asyncio.Future[PassReport]) -> None:
        self._passes.discard(fut)
        if fut.cancelled():
            return
        exc = fut.exception()
        if exc is not None:
            logger.error("Pass failed: %s", exc, exc_info=exc)
            return
        self._report(fut.result())

    async def _pass_loop(self) -> None:
        """Launch a pass on every tick; passes may overlap."""
        loop = asyncio.get_running_loop()
        while self._running:
            fut = asyncio.ensure_future(loop.run_in_executor(None, self.runner.run_pass))
            self._passes.add(fut)
            fut.add_done_callback(self._on_pass_done)
            try:
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                break

    async def _refresh_loop(self) -> None:
        """Reload definitions and swap them into the hand-off."""
        loop = asyncio.get_running_loop()
        while self._running:
            try:
                await asyncio.sleep(self.refresh_interval)
                if not self._running:
                    break
                definitions = await loop.run_in_executor(None, self.store.reload)
                await loop.run_in_executor(None, self.runner.handoff.replace, definitions)
                logger.debug("Swapped in %d definitions", len(definitions))
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Definition refresh error")
