"""Entry point for probebeat."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from probebeat.checks import CheckValidationError, DefinitionParseError, UnknownCheckTypeError, unpack_definition
from probebeat.config import settings
from probebeat.definitions import DefinitionHandoff, DefinitionStore
from probebeat.publish import MemoryPublisher, create_publisher
from probebeat.scheduler import BeatScheduler, PassRunner

console = Console()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)


def run_once(path: str) -> int:
    """Run a single pass and print the results."""
    store = DefinitionStore(path)
    publisher = MemoryPublisher()
    runner = PassRunner(DefinitionHandoff(store.load()), publisher)

    with console.status("[bold green]Running checks..."):
        report = runner.run_pass()
    runner.shutdown()

    table = Table(title=f"Pass {report.started_at}")
    table.add_column("Group")
    table.add_column("ID")
    table.add_column("Type")
    table.add_column("Result")
    table.add_column("Message", overflow="fold")
    for event in sorted(publisher.events, key=lambda e: (e.group, e.id)):
        status = "[green]PASS[/green]" if event.passed else "[red]FAIL[/red]"
        table.add_row(event.group, event.id, event.check_type, status, event.message)
    console.print(table)
    console.print(
        f"[dim]{report.passed} passed / {report.failed} failed "
        f"({report.skipped} not launched) in {report.duration_ms:.0f}ms[/dim]"
    )
    return 0 if report.failed == 0 else 1


def run_beat(path: str) -> None:
    """Run passes on the configured cadence until interrupted."""
    console.print(Panel(f"probebeat: pass every {settings.pass_interval}s", style="bold green"))
    store = DefinitionStore(path)
    publisher = create_publisher(settings.publisher, settings.publish_url, settings.publish_token)
    runner = PassRunner(DefinitionHandoff(store.load()), publisher)
    scheduler = BeatScheduler(store, runner)

    async def _main() -> None:
        await scheduler.start()
        try:
            await asyncio.Event().wait()
        finally:
            await scheduler.stop()

    try:
        asyncio.run(_main())
    except KeyboardInterrupt:
        pass
    finally:
        runner.shutdown()
        publisher.close()


def validate(path: str) -> int:
    """Render and initialize every definition without running anything."""
    definitions = DefinitionStore(path).load()
    errors = 0
    for definition in definitions:
        try:
            unpack_definition(definition)
        except (UnknownCheckTypeError, DefinitionParseError, CheckValidationError) as e:
            errors += 1
            console.print(f"[red]✗[/red] {definition.id}: {e}")
        else:
            console.print(f"[green]✓[/green] {definition.id} ({definition.type})")
    console.print(f"\n{len(definitions) - errors}/{len(definitions)} definitions valid")
    return 1 if errors else 0


def main() -> None:
    parser = argparse.ArgumentParser(description="probebeat: periodic protocol checks")
    parser.add_argument(
        "-f", "--definitions", default=settings.definitions_file,
        help="YAML file with check definitions",
    )
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("run", help="Run a single pass and print the results")
    sub.add_parser("beat", help="Run passes continuously")
    sub.add_parser("validate", help="Check definitions for missing fields")

    args = parser.parse_args()

    if args.command == "run":
        sys.exit(run_once(args.definitions))
    elif args.command == "beat":
        run_beat(args.definitions)
    elif args.command == "validate":
        sys.exit(validate(args.definitions))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
