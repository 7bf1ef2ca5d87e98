# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.01
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/lsm/cli/utils.py

"""
CLI utility functions shared by the lsm commands.

This module provides:
- Manager construction from the global ``--repo`` option
- Progress reporter wiring for single and batch operations
- Error handling with typer exits
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import typer
from rich.console import Console

from lsm.core.manager import SubmoduleManager
from lsm.system.progress import ConsoleProgressReporter


def repo_from_context(ctx: typer.Context) -> Optional[Path]:
    obj = ctx.obj or {}
    repo = obj.get("repo")
    return Path(repo) if repo else None


def get_manager(ctx: typer.Context) -> SubmoduleManager:
    """Build a manager for the repository selected on the command line."""
    return SubmoduleManager(repo_from_context(ctx))


@contextmanager
def reporting(
    console: Console,
    manager: SubmoduleManager,
    verbose: bool = False,
    batch_total: Optional[int] = None,
    batch: bool = False,
    description: str = "Processing submodules",
) -> Iterator[ConsoleProgressReporter]:
    """Subscribe a console reporter for the duration of one command."""
    reporter = ConsoleProgressReporter(console, verbose=verbose)
    unsubscribe = manager.subscribe(reporter)
    if batch:
        reporter.start_batch(batch_total, description)
    try:
        yield reporter
    finally:
        reporter.stop_batch()
        unsubscribe()


def handle_operation_error(console: Console, operation: str, error: Exception) -> None:
    """Handle operation errors with consistent formatting."""
    console.print(f"[red]✗[/red] Error {operation}: {error}")
    raise typer.Exit(1)
