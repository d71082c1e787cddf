"""Tests for the CLI entry points."""

from __future__ import annotations

from pathlib import Path

from probebeat.main import run_once, validate


def _write(tmp_path: Path, body: str) -> str:
    path = tmp_path / "checks.yaml"
    path.write_text(body, encoding="utf-8")
    return str(path)


class TestCLI:
    def test_run_once_all_pass(self, tmp_path: Path) -> None:
        path = _write(tmp_path, (
            "checks:\n"
            "  - {id: a, type: noop, definition: '{\"Static\": \"{{ X }}\"}', attributes: {X: '1'}}\n"
            "  - {id: b, type: noop}\n"
        ))
        assert run_once(path) == 0

    def test_run_once_reports_failures(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "checks:\n  - {id: a, type: gopher}\n")
        assert run_once(path) == 1

    def test_validate(self, tmp_path: Path) -> None:
        path = _write(tmp_path, (
            "checks:\n"
            "  - {id: ok, type: noop}\n"
            "  - {id: ssh, type: ssh, definition: {IP: 10.0.0.5}}\n"
        ))
        assert validate(path) == 1

    def test_validate_clean(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "checks:\n  - {id: ok, type: noop}\n")
        assert validate(path) == 0
