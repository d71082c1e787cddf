"""Tests for the pass scheduler — fan-out, fan-in, isolation, publication."""

from __future__ import annotations

import asyncio
import threading
import time

import pytest

from probebeat import scheduler
from probebeat.checks import Check, CheckDefinitionModel
from probebeat.definitions import DefinitionHandoff, DefinitionStore
from probebeat.publish import Event, MemoryPublisher
from probebeat.scheduler import BeatScheduler, PassRunner, WaitGroup


class _Empty(CheckDefinitionModel):
    pass


def noop_defs(make_definition, n: int) -> list:
    return [make_definition(f"c{i}", definition='{"Static": "s"}') for i in range(n)]


@pytest.fixture
def publisher() -> MemoryPublisher:
    return MemoryPublisher()


# ── WaitGroup ────────────────────────────────────────────────────────────────


class TestWaitGroup:
    def test_wait_returns_when_all_done(self) -> None:
        wg = WaitGroup()
        wg.add(3)
        for _ in range(3):
            threading.Thread(target=wg.done).start()
        assert wg.wait(timeout=5)
        assert wg.count == 0

    def test_wait_times_out_while_pending(self) -> None:
        wg = WaitGroup()
        wg.add(1)
        assert wg.wait(timeout=0.01) is False

    def test_negative_counter(self) -> None:
        with pytest.raises(ValueError):
            WaitGroup().done()


# ── PassRunner ───────────────────────────────────────────────────────────────


class TestPassRunner:
    def test_one_event_per_definition(self, make_definition, publisher) -> None:
        defs = noop_defs(make_definition, 25)
        runner = PassRunner(DefinitionHandoff(defs), publisher, max_workers=8)
        report = runner.run_pass()
        runner.shutdown()

        assert len(publisher.events) == 25
        assert {e.id for e in publisher.events} == {d.id for d in defs}
        assert report.total == 25
        assert report.passed == 25
        assert report.skipped == 0

    def test_thousand_noops_do_not_deadlock(self, make_definition, publisher) -> None:
        defs = noop_defs(make_definition, 1000)
        runner = PassRunner(DefinitionHandoff(defs), publisher, max_workers=64)
        done = threading.Event()

        def _run() -> None:
            runner.run_pass()
            done.set()

        threading.Thread(target=_run, daemon=True).start()
        assert done.wait(timeout=30)
        runner.shutdown()
        assert len(publisher.events) == 1000

    def test_event_fields(self, make_definition, publisher) -> None:
        runner = PassRunner(DefinitionHandoff(noop_defs(make_definition, 1)), publisher, event_type="dynamicbeat")
        runner.run_pass()
        runner.shutdown()

        event = publisher.events[0]
        assert set(event.model_dump()) == {
            "timestamp", "type", "id", "name", "group", "score_weight",
            "check_type", "passed", "message", "details",
        }
        assert event.type == "dynamicbeat"
        assert event.group == "team01"
        assert event.check_type == "noop"

    def test_definitions_returned_to_handoff(self, make_definition, publisher) -> None:
        defs = noop_defs(make_definition, 3)
        handoff = DefinitionHandoff(defs)
        runner = PassRunner(handoff, publisher)
        runner.run_pass()
        runner.shutdown()
        assert handoff.borrow(timeout=1) == defs

    def test_attributes_rendered_per_definition(self, make_definition, publisher) -> None:
        defs = [
            make_definition(f"c{i}", definition='{"Static": "{{ Team }}"}', attributes={"Team": f"team{i}"})
            for i in range(3)
        ]
        runner = PassRunner(DefinitionHandoff(defs), publisher)
        runner.run_pass()
        runner.shutdown()
        messages = {e.id: e.message for e in publisher.events}
        assert messages == {f"c{i}": f"Static: team{i} Dynamic: " for i in range(3)}

    def test_unknown_type_yields_failed_event(self, make_definition, publisher) -> None:
        defs = noop_defs(make_definition, 2) + [make_definition("bad", type="gopher")]
        runner = PassRunner(DefinitionHandoff(defs), publisher)
        report = runner.run_pass()
        runner.shutdown()

        assert len(publisher.events) == 3
        bad = next(e for e in publisher.events if e.id == "bad")
        assert not bad.passed
        assert bad.message == "Unknown check type: gopher"
        assert bad.details == {"error": "unknown_type"}
        assert report.skipped == 1
        assert report.passed == 2

    def test_invalid_definition_yields_failed_event(self, make_definition, publisher) -> None:
        bad = make_definition("ssh1", type="ssh", definition='{"IP": "10.0.0.5", "Cmd": "id"}')
        runner = PassRunner(DefinitionHandoff([bad]), publisher)
        runner.run_pass()
        runner.shutdown()

        (event,) = publisher.events
        assert not event.passed
        assert event.details == {"error": "validation", "field": "Username"}
        assert "Username" in event.message

    def test_unparseable_definition_yields_failed_event(self, make_definition, publisher) -> None:
        bad = make_definition("n1", definition='{"Static": ')
        runner = PassRunner(DefinitionHandoff([bad]), publisher)
        runner.run_pass()
        runner.shutdown()
        assert publisher.events[0].details == {"error": "parse"}

    def test_template_evaluation_error_does_not_abort_pass(self, make_definition, publisher) -> None:
        defs = [
            make_definition("ok", definition='{"Static": "ok"}'),
            make_definition("div", definition='{"Static": "{{ 1 / 0 }}"}'),
        ]
        runner = PassRunner(DefinitionHandoff(defs), publisher)
        report = runner.run_pass()
        runner.shutdown()

        assert {e.id for e in publisher.events} == {"ok", "div"}
        assert report.total == 2
        # The raw text is still a valid noop payload
        div = next(e for e in publisher.events if e.id == "div")
        assert div.message == "Static: {{ 1 / 0 }} Dynamic: "

    def test_unexpected_build_error_yields_failed_event(self, make_definition, publisher, monkeypatch) -> None:
        real_unpack = scheduler.unpack_definition

        def _unpack(definition):
            if definition.id == "c1":
                raise RuntimeError("registry exploded")
            return real_unpack(definition)

        monkeypatch.setattr(scheduler, "unpack_definition", _unpack)
        runner = PassRunner(DefinitionHandoff(noop_defs(make_definition, 3)), publisher)
        report = runner.run_pass()
        runner.shutdown()

        assert len(publisher.events) == 3
        bad = next(e for e in publisher.events if e.id == "c1")
        assert not bad.passed
        assert bad.message == "registry exploded"
        assert bad.details == {"error": "definition"}
        assert report.skipped == 1
        assert report.passed == 2

    def test_timed_out_check_is_marked(self, make_definition, publisher, register) -> None:
        @register
        class Sluggish(Check):
            check_type = "sluggish"
            Definition = _Empty

            def execute(self, deadline):
                time.sleep(deadline.remaining() + 0.02)
                return self.fail("no response")

        runner = PassRunner(
            DefinitionHandoff([make_definition("s1", type="sluggish")]), publisher, pass_timeout=0.05,
        )
        runner.run_pass()
        runner.shutdown()

        (event,) = publisher.events
        assert not event.passed
        assert event.details == {"timed_out": True}
        assert event.message.startswith("Check timed out: ")

    def test_publisher_error_does_not_drop_other_events(self, make_definition) -> None:
        class Flaky(MemoryPublisher):
            def publish(self, event: Event) -> None:
                if event.id == "c0":
                    raise RuntimeError("sink down")
                super().publish(event)

        publisher = Flaky()
        runner = PassRunner(DefinitionHandoff(noop_defs(make_definition, 4)), publisher)
        runner.run_pass()
        runner.shutdown()
        assert {e.id for e in publisher.events} == {"c1", "c2", "c3"}

    def test_hung_check_does_not_block_others(self, make_definition, publisher, register) -> None:
        release = threading.Event()
        finished: list[str] = []

        @register
        class Hang(Check):
            check_type = "hang"
            Definition = _Empty

            def execute(self, deadline):
                release.wait(timeout=30)
                return self.succeed("released")

        @register
        class Quick(Check):
            check_type = "quick"
            Definition = _Empty

            def execute(self, deadline):
                finished.append(self.id)
                return self.succeed()

        defs = [make_definition("hang", type="hang")] + [
            make_definition(f"q{i}", type="quick") for i in range(5)
        ]
        runner = PassRunner(DefinitionHandoff(defs), publisher, max_workers=4)
        thread = threading.Thread(target=runner.run_pass, daemon=True)
        thread.start()

        deadline = time.monotonic() + 5
        while len(finished) < 5 and time.monotonic() < deadline:
            time.sleep(0.01)
        assert sorted(finished) == [f"q{i}" for i in range(5)]
        # The pass itself waits for the hung check
        assert thread.is_alive()
        assert publisher.events == []

        release.set()
        thread.join(timeout=5)
        runner.shutdown()
        assert not thread.is_alive()
        assert len(publisher.events) == 6


# ── BeatScheduler ────────────────────────────────────────────────────────────


class TestBeatScheduler:
    def test_run_once(self, tmp_path, make_definition, publisher) -> None:
        store = DefinitionStore(tmp_path / "missing.yaml")
        runner = PassRunner(DefinitionHandoff(noop_defs(make_definition, 3)), publisher)
        reports = []
        scheduler = BeatScheduler(store, runner, interval=60, refresh_interval=60, on_report=reports.append)

        report = asyncio.run(scheduler.run_once())
        runner.shutdown()
        assert report.passed == 3
        assert reports == [report]

    def test_periodic_passes_and_refresh(self, tmp_path, make_definition, publisher) -> None:
        path = tmp_path / "checks.yaml"
        path.write_text(
            "checks:\n"
            "  - {id: fresh, name: Fresh, type: noop, definition: '{}'}\n",
            encoding="utf-8",
        )
        store = DefinitionStore(path)
        runner = PassRunner(DefinitionHandoff(noop_defs(make_definition, 2)), publisher)
        scheduler = BeatScheduler(store, runner, interval=0.05, refresh_interval=0.02)

        async def _drive() -> None:
            await scheduler.start()
            await asyncio.sleep(0.4)
            await scheduler.stop()

        asyncio.run(_drive())
        runner.shutdown()

        ids = {e.id for e in publisher.events}
        assert "fresh" in ids
        assert len(publisher.events) >= 3
