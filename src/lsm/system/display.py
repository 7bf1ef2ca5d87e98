# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.05.17
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/lsm/system/display.py

# Standard library imports
from typing import Any

# Third-party imports
import orjson
from rich.console import Console
from rich.table import Table
from rich.tree import Tree

# Local imports
from lsm.data.models import (
    AnalysisResult,
    BatchResult,
    DependencyTree,
    HealthCheckResult,
    SubmoduleRecord,
    SubmoduleStatus,
)


STATUS_STYLES = {
    SubmoduleStatus.UP_TO_DATE: "green",
    SubmoduleStatus.NOT_INITIALIZED: "dim",
    SubmoduleStatus.MODIFIED: "yellow",
    SubmoduleStatus.MERGE_CONFLICT: "red",
    SubmoduleStatus.AHEAD: "cyan",
    SubmoduleStatus.BEHIND: "magenta",
    SubmoduleStatus.DIVERGED: "red",
}

CHECK_SYMBOLS = {
    "pass": "[green]✓[/green]",
    "warn": "[yellow]![/yellow]",
    "fail": "[red]✗[/red]",
}


def print_json(console: Console, data: Any) -> None:
    """Write data as indented JSON, bypassing Rich markup."""
    console.print(
        orjson.dumps(data, option=orjson.OPT_INDENT_2).decode(),
        markup=False,
        highlight=False,
        soft_wrap=True,
    )


def format_status(status: SubmoduleStatus) -> str:
    style = STATUS_STYLES.get(status, "")
    return f"[{style}]{status.value}[/{style}]" if style else status.value


def submodules_to_table(records: list[SubmoduleRecord], verbose: bool = False) -> Table:
    """Convert submodule records to a rich Table for display.

    Args:
        records: Records from a listing
        verbose: Include URL, dirty flag and ahead/behind columns

    Returns:
        Rich Table object ready for display
    """
    table = Table(title="Submodules")
    table.add_column("Path", style="cyan", no_wrap=True)
    table.add_column("Commit", style="yellow", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    table.add_column("Branch", style="green")

    if verbose:
        table.add_column("URL", style="blue")
        table.add_column("Dirty", justify="center")
        table.add_column("Ahead", justify="right")
        table.add_column("Behind", justify="right")

    for record in records:
        row = [
            record.path,
            record.commit,
            format_status(record.status),
            record.branch or "",
        ]
        if verbose:
            row.extend([
                record.url or "[red]missing[/red]",
                "[yellow]yes[/yellow]" if record.uncommitted_changes else "",
                str(record.ahead) if record.ahead else "",
                str(record.behind) if record.behind else "",
            ])
        table.add_row(*row)

    return table


def display_submodules(console: Console, records: list[SubmoduleRecord], verbose: bool = False) -> None:
    if not records:
        console.print("[yellow]No submodules found[/yellow]")
        return
    console.print(submodules_to_table(records, verbose=verbose))
    console.print(f"Found {len(records)} submodule(s)")


def _add_tree_nodes(branch: Tree, node: DependencyTree) -> None:
    for child in node.children:
        label = f"[cyan]{child.name}[/cyan]"
        if child.path and child.path != child.name:
            label += f" [dim]({child.path})[/dim]"
        if child.truncated:
            label += " [yellow]↻[/yellow]"
        _add_tree_nodes(branch.add(label), child)


def dependency_tree_to_rich(tree: DependencyTree) -> Tree:
    root = Tree(f"[bold]{tree.name}[/bold]")
    _add_tree_nodes(root, tree)
    return root


def display_dependency_tree(console: Console, tree: DependencyTree) -> None:
    console.print(dependency_tree_to_rich(tree))
    if not tree.children:
        console.print("[dim]No submodules[/dim]")


def display_analysis(console: Console, result: AnalysisResult) -> None:
    """Display the status histogram and any conflicts, cycles and unused entries."""
    console.print("[bold]Submodule Analysis[/bold]")
    console.print(f"Total submodules: {result.total}")
    console.print()

    table = Table(title="By Status")
    table.add_column("Status")
    table.add_column("Count", justify="right")
    for status, count in result.by_status.items():
        if count:
            table.add_row(format_status(status), str(count))
    console.print(table)

    if result.conflicts:
        conflicts = Table(title="Conflicts")
        conflicts.add_column("Path", style="cyan")
        conflicts.add_column("Type", style="red")
        conflicts.add_column("Details")
        for conflict in result.conflicts:
            conflicts.add_row(conflict.path, conflict.type, conflict.details)
        console.print(conflicts)
    else:
        console.print("[green]✓[/green] No conflicts")

    if result.circular:
        console.print("[red]✗[/red] Circular dependencies:")
        for cycle in result.circular:
            console.print(f"  {' → '.join(cycle)}")
    else:
        console.print("[green]✓[/green] No circular dependencies")

    if result.unused:
        console.print(f"[yellow]![/yellow] Declared but not in the index: {', '.join(result.unused)}")
    else:
        console.print("[green]✓[/green] No unused submodules")


def display_health(console: Console, result: HealthCheckResult, verbose: bool = False) -> None:
    console.print("[bold]Submodule Health Check[/bold]")
    console.print()

    for check in result.checks:
        console.print(f"{CHECK_SYMBOLS.get(check.status, check.status)} {check.name}: {check.message}")
        if verbose and check.details:
            details = check.details if isinstance(check.details, list) else [check.details]
            for detail in details:
                console.print(f"    [dim]{detail}[/dim]")

    color = "green" if result.score >= 75 else "yellow" if result.score >= 50 else "red"
    console.print(f"\nScore: [{color}]{result.score:.1f}[/{color}] ({result.summary})")


def display_batch_result(console: Console, result: BatchResult, action: str) -> None:
    for path in result.success:
        console.print(f"[green]✓[/green] {action} {path}")
    for failure in result.failed:
        console.print(f"[red]✗[/red] {failure.path}: {failure.error}")

    summary = f"{len(result.success)}/{result.total} succeeded"
    if result.failed:
        console.print(f"\n[yellow]{summary}[/yellow]")
    else:
        console.print(f"\n[green]{summary}[/green]")
