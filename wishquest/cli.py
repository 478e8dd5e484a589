"""Command line helpers for wishquest."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from .app import EngineApp
from .config import WishQuestConfig
from .domain.maintenance import MAINTENANCE_TASKS
from .loaders import apply_settings_file, load_event_pool, load_rank_table, validate_file
from .validators import validate_app

console = Console()


def _configure_logging(config: WishQuestConfig) -> None:
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_app(
    config: WishQuestConfig, ranks: str | None = None, events: str | None = None
) -> EngineApp:
    return EngineApp(
        config,
        ranks=load_rank_table(Path(ranks)) if ranks else None,
        event_pool=load_event_pool(Path(events)) if events else None,
    )


def run_maintenance() -> None:
    parser = argparse.ArgumentParser(description="Run wishquest maintenance hooks once")
    parser.add_argument(
        "--task",
        action="append",
        choices=MAINTENANCE_TASKS,
        help="Task to run; repeat to run several (default: all)",
    )
    args = parser.parse_args()

    config = WishQuestConfig.from_env()
    _configure_logging(config)
    app = _build_app(config)

    async def _run():
        await app.init_backend()
        try:
            return await app.maintenance.run_cycle(args.task)
        finally:
            await app.shutdown()

    report = asyncio.run(_run())
    table = Table(show_header=True, header_style="bold")
    table.add_column("Task")
    table.add_column("Processed", justify="right")
    table.add_column("Status")
    for result in report.results:
        status = "[green]ok[/green]" if result.ok else f"[red]{result.error}[/red]"
        table.add_row(result.name, str(result.processed), status)
    console.print(table)
    if report.failed:
        sys.exit(1)


def run_ranks() -> None:
    parser = argparse.ArgumentParser(description="Show the wishquest rank table")
    parser.add_argument("--ranks", help="Path to rank table JSON file")
    args = parser.parse_args()

    config = WishQuestConfig.from_env()
    app = _build_app(config, ranks=args.ranks)
    table = Table(show_header=True, header_style="bold")
    table.add_column("Rank")
    table.add_column("XP", justify="right")
    table.add_column("Quota bonus (d/w/m)", justify="right")
    table.add_column("XP bonus", justify="right")
    for rank in app.ranks.all():
        bonus = app.ranks.experience_multiplier(rank) - 1
        table.add_row(
            f"{rank.emoji} {rank.name}".strip(),
            str(rank.min_experience),
            f"{rank.daily_quota_bonus}/{rank.weekly_quota_bonus}/{rank.monthly_quota_bonus}",
            f"{bonus:.0%}",
        )
    console.print(table)


def run_validate() -> None:
    parser = argparse.ArgumentParser(description="wishquest configuration validator")
    parser.add_argument("--ranks", help="Path to rank table JSON file")
    parser.add_argument("--events", help="Path to event pool JSON file")
    parser.add_argument("--settings", help="Path to economy settings JSON file")
    parser.add_argument(
        "--apply",
        action="store_true",
        help="Write the validated settings file to the configured storage",
    )
    args = parser.parse_args()

    errors: list[str] = []
    for kind, path in (("ranks", args.ranks), ("events", args.events), ("settings", args.settings)):
        if path:
            errors.extend(validate_file(kind, Path(path)))
    if errors:
        console.print("[bold red]Definition errors:[/bold red]")
        for err in errors:
            console.print(f"- {err}")
        sys.exit(1)

    config = WishQuestConfig.from_env()
    _configure_logging(config)
    app = _build_app(config, ranks=args.ranks, events=args.events)

    async def _run() -> list[str]:
        await app.init_backend()
        try:
            if args.settings and args.apply:
                await apply_settings_file(app, Path(args.settings))
            return await validate_app(app)
        finally:
            await app.shutdown()

    issues = asyncio.run(_run())
    if issues:
        console.print("[bold red]Configuration errors:[/bold red]")
        for issue in issues:
            console.print(f"- {issue}")
        sys.exit(1)
    console.print("Configuration is valid ✅")
