# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.05.10
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/lsm/cli/main.py

"""
Typer command definitions for lsm.

Commands are thin: they build a SubmoduleManager for the selected repository,
call one manager or analysis operation, and render the result with Rich (or
as JSON with ``--json``).
"""

# Standard library imports
from importlib.metadata import version
from pathlib import Path
from typing import Any, Optional

# Third-party imports
import typer
import yaml
from rich.console import Console

# Local imports
from lsm.cli.utils import get_manager, handle_operation_error, reporting
from lsm.config.manager import ConfigManager
from lsm.core.analysis import DEFAULT_TREE_DEPTH, AnalysisEngine
from lsm.data.models import AddOptions, ListOptions, RemoveOptions, UpdateOptions
from lsm.system.display import (
    display_analysis,
    display_batch_result,
    display_dependency_tree,
    display_health,
    display_submodules,
    print_json,
)
from lsm.system.exceptions import LSMError
from lsm.system.logging_setup import setup_logging

app = typer.Typer(
    help="""lsm - Git submodule management

[bold blue]Submodules:[/bold blue] add, remove, list, status, update, sync, foreach, checkout
[bold green]Batch:[/bold green] batch add, batch update, batch preset
[bold magenta]Analysis:[/bold magenta] analyze, tree, check
[bold yellow]Settings:[/bold yellow] config
""",
    rich_markup_mode="rich"
)
batch_app = typer.Typer(help="Run an operation over many submodules concurrently.", rich_markup_mode="rich")
config_app = typer.Typer(help="Read and write .lsmrc settings.", rich_markup_mode="rich")
app.add_typer(batch_app, name="batch")
app.add_typer(config_app, name="config")

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        try:
            pkg_version = version("lsm")
        except Exception as e:
            handle_operation_error(console, "retrieving version", e)
        console.print(f"lsm version {pkg_version}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Optional[bool] = typer.Option(
        None, "--version", callback=version_callback, is_eager=True,
        help="Show version and exit"
    ),
    repo: Optional[Path] = typer.Option(None, "--repo", "-C", help="Repository to operate on (default: current directory)"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
) -> None:
    """lsm - manage the git submodules of a repository."""
    ctx.ensure_object(dict)
    ctx.obj["repo"] = repo
    setup_logging(debug=debug, config=ConfigManager(repo))


# =============================================================================
# SUBMODULE COMMANDS
# =============================================================================

@app.command()
def add(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Remote URL of the submodule"),
    path: str = typer.Argument(..., help="Relative path to place the submodule at"),
    branch: Optional[str] = typer.Option(None, "--branch", "-b", help="Branch to track"),
    tag: Optional[str] = typer.Option(None, "--tag", help="Tag to check out after adding"),
    commit: Optional[str] = typer.Option(None, "--commit", help="Commit to check out after adding"),
    depth: Optional[int] = typer.Option(None, "--depth", min=1, help="Shallow clone depth"),
    force: bool = typer.Option(False, "--force", "-f", help="Replace an existing submodule at path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show each step"),
) -> None:
    """[bold blue]Submodules[/bold blue]: Add a submodule."""
    manager = get_manager(ctx)
    options = AddOptions(branch=branch, tag=tag, commit=commit, depth=depth, force=force)
    try:
        with reporting(console, manager, verbose=verbose):
            manager.add(url, path, options)
    except LSMError as e:
        handle_operation_error(console, "adding submodule", e)
    console.print(f"[green]✓[/green] Added submodule {path}")


@app.command()
def remove(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Path of the submodule to remove"),
    force: bool = typer.Option(False, "--force", "-f", help="Remove even with uncommitted changes"),
    keep_files: bool = typer.Option(False, "--keep-files", help="Untrack but leave the working tree on disk"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show each step"),
) -> None:
    """[bold blue]Submodules[/bold blue]: Remove a submodule."""
    manager = get_manager(ctx)
    try:
        with reporting(console, manager, verbose=verbose):
            manager.remove(path, RemoveOptions(force=force, keep_files=keep_files))
    except LSMError as e:
        handle_operation_error(console, "removing submodule", e)
    console.print(f"[green]✓[/green] Removed submodule {path}")


@app.command(name="list")
def list_command(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Probe URL, changes and upstream distance"),
    recursive: bool = typer.Option(False, "--recursive", "-r", help="Include nested submodules"),
    to_json: bool = typer.Option(False, "--json", help="Output results as JSON"),
) -> None:
    """[bold blue]Submodules[/bold blue]: List submodules."""
    manager = get_manager(ctx)
    try:
        records = manager.list(ListOptions(verbose=verbose, recursive=recursive))
    except LSMError as e:
        handle_operation_error(console, "listing submodules", e)

    if to_json:
        print_json(console, [record.to_dict() for record in records])
    else:
        display_submodules(console, records, verbose=verbose)


@app.command()
def status(
    ctx: typer.Context,
    path: Optional[str] = typer.Argument(None, help="Only show this submodule"),
    to_json: bool = typer.Option(False, "--json", help="Output results as JSON"),
) -> None:
    """[bold blue]Submodules[/bold blue]: Show detailed submodule status."""
    manager = get_manager(ctx)
    try:
        records = manager.status(path)
    except LSMError as e:
        handle_operation_error(console, "reading status", e)

    if path and not records:
        console.print(f"[red]✗[/red] Submodule not found: {path}")
        raise typer.Exit(1)

    if to_json:
        print_json(console, [record.to_dict() for record in records])
    else:
        display_submodules(console, records, verbose=True)


@app.command()
def update(
    ctx: typer.Context,
    path: Optional[str] = typer.Argument(None, help="Only update this submodule"),
    init: bool = typer.Option(False, "--init", help="Initialize submodules that are not yet checked out"),
    recursive: bool = typer.Option(False, "--recursive", "-r", help="Update nested submodules"),
    remote: bool = typer.Option(False, "--remote", help="Update to the remote tracking branch"),
    merge: bool = typer.Option(False, "--merge", help="Merge instead of checking out"),
    rebase: bool = typer.Option(False, "--rebase", help="Rebase instead of checking out"),
    jobs: Optional[int] = typer.Option(None, "--jobs", "-j", min=1, help="Parallel fetch jobs (default: default.jobs)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show each step"),
) -> None:
    """[bold blue]Submodules[/bold blue]: Update submodules."""
    manager = get_manager(ctx)
    options = UpdateOptions(init=init, recursive=recursive, remote=remote, merge=merge, rebase=rebase, jobs=jobs)
    try:
        with reporting(console, manager, verbose=verbose):
            manager.update(path, options)
    except LSMError as e:
        handle_operation_error(console, "updating submodules", e)
    console.print(f"[green]✓[/green] Updated {path or 'all submodules'}")


@app.command()
def sync(ctx: typer.Context) -> None:
    """[bold blue]Submodules[/bold blue]: Sync submodule URLs from .gitmodules."""
    manager = get_manager(ctx)
    try:
        manager.sync()
    except LSMError as e:
        handle_operation_error(console, "syncing submodules", e)
    console.print("[green]✓[/green] Synced submodule URLs")


@app.command()
def foreach(
    ctx: typer.Context,
    command: str = typer.Argument(..., help="Shell command to run in each submodule"),
) -> None:
    """[bold blue]Submodules[/bold blue]: Run a command in every submodule."""
    manager = get_manager(ctx)
    try:
        output = manager.foreach(command)
    except LSMError as e:
        handle_operation_error(console, "running command", e)
    if output:
        console.print(output, markup=False, highlight=False, soft_wrap=True)


@app.command()
def checkout(
    ctx: typer.Context,
    branch: str = typer.Argument(..., help="Branch or ref to check out"),
    path: Optional[str] = typer.Argument(None, help="Only this submodule (default: all)"),
) -> None:
    """[bold blue]Submodules[/bold blue]: Check out a branch in submodules."""
    manager = get_manager(ctx)
    try:
        manager.checkout(branch, path)
    except LSMError as e:
        handle_operation_error(console, "checking out", e)
    console.print(f"[green]✓[/green] Checked out {branch} in {path or 'all submodules'}")


# =============================================================================
# BATCH COMMANDS
# =============================================================================

def _report_batch(result, action: str, to_json: bool) -> None:
    if to_json:
        print_json(console, result.to_dict())
    else:
        display_batch_result(console, result, action)
    if result.failed:
        raise typer.Exit(1)


@batch_app.command(name="add")
def batch_add(
    ctx: typer.Context,
    file: Path = typer.Argument(..., help="YAML file with a 'submodules' list"),
    jobs: Optional[int] = typer.Option(None, "--jobs", "-j", min=1, help="Concurrent operations (default: default.jobs)"),
    to_json: bool = typer.Option(False, "--json", help="Output results as JSON"),
) -> None:
    """[bold green]Batch[/bold green]: Add every submodule listed in a file."""
    manager = get_manager(ctx)
    try:
        configs = ConfigManager.load_batch_config(file)
        with reporting(console, manager, batch=not to_json, batch_total=len(configs), description="Adding submodules"):
            result = manager.batch_add(configs, jobs=jobs)
    except LSMError as e:
        handle_operation_error(console, "adding submodules", e)
    _report_batch(result, "Added", to_json)


@batch_app.command(name="update")
def batch_update(
    ctx: typer.Context,
    init: bool = typer.Option(False, "--init", help="Initialize submodules that are not yet checked out"),
    recursive: bool = typer.Option(False, "--recursive", "-r", help="Update nested submodules"),
    remote: bool = typer.Option(False, "--remote", help="Update to the remote tracking branch"),
    jobs: Optional[int] = typer.Option(None, "--jobs", "-j", min=1, help="Concurrent operations (default: default.jobs)"),
    to_json: bool = typer.Option(False, "--json", help="Output results as JSON"),
) -> None:
    """[bold green]Batch[/bold green]: Update each submodule as a separate job."""
    manager = get_manager(ctx)
    options = UpdateOptions(init=init, recursive=recursive, remote=remote, jobs=jobs)
    try:
        with reporting(console, manager, batch=not to_json, description="Updating submodules"):
            result = manager.batch_update(options)
    except LSMError as e:
        handle_operation_error(console, "updating submodules", e)
    _report_batch(result, "Updated", to_json)


@batch_app.command(name="preset")
def batch_preset(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Preset name from .lsmrc"),
    jobs: Optional[int] = typer.Option(None, "--jobs", "-j", min=1, help="Concurrent operations (default: default.jobs)"),
    to_json: bool = typer.Option(False, "--json", help="Output results as JSON"),
) -> None:
    """[bold green]Batch[/bold green]: Add the submodules of a saved preset."""
    manager = get_manager(ctx)
    try:
        with reporting(console, manager, batch=not to_json, description=f"Adding preset {name}"):
            result = manager.add_preset(name, jobs=jobs)
    except LSMError as e:
        handle_operation_error(console, f"applying preset {name}", e)
    _report_batch(result, "Added", to_json)


# =============================================================================
# ANALYSIS COMMANDS
# =============================================================================

@app.command()
def analyze(
    ctx: typer.Context,
    to_json: bool = typer.Option(False, "--json", help="Output results as JSON"),
) -> None:
    """[bold magenta]Analysis[/bold magenta]: Report conflicts, cycles and unused submodules."""
    engine = AnalysisEngine(get_manager(ctx))
    try:
        result = engine.analyze()
    except LSMError as e:
        handle_operation_error(console, "analyzing submodules", e)

    if to_json:
        print_json(console, result.to_dict())
    else:
        display_analysis(console, result)


@app.command()
def tree(
    ctx: typer.Context,
    depth: int = typer.Option(DEFAULT_TREE_DEPTH, "--depth", "-d", min=1, help="Maximum nesting depth"),
    to_json: bool = typer.Option(False, "--json", help="Output results as JSON"),
) -> None:
    """[bold magenta]Analysis[/bold magenta]: Show the nested submodule tree."""
    engine = AnalysisEngine(get_manager(ctx))
    try:
        result = engine.get_dependency_tree(max_depth=depth)
    except LSMError as e:
        handle_operation_error(console, "building dependency tree", e)

    if to_json:
        print_json(console, result.to_dict())
    else:
        display_dependency_tree(console, result)


@app.command()
def check(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show affected paths"),
    to_json: bool = typer.Option(False, "--json", help="Output results as JSON"),
) -> None:
    """[bold magenta]Analysis[/bold magenta]: Run submodule health checks."""
    engine = AnalysisEngine(get_manager(ctx))
    try:
        result = engine.health_check()
    except LSMError as e:
        handle_operation_error(console, "running health check", e)

    if to_json:
        print_json(console, result.to_dict())
    else:
        display_health(console, result, verbose=verbose)


# =============================================================================
# CONFIG COMMANDS
# =============================================================================

def _config_manager(ctx: typer.Context) -> ConfigManager:
    return get_manager(ctx).config


def _parse_value(raw: str) -> Any:
    """Interpret a command-line value as YAML so numbers and booleans keep their type."""
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw


@config_app.command(name="get")
def config_get(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Dotted key, e.g. default.jobs"),
) -> None:
    """[bold yellow]Settings[/bold yellow]: Print one setting."""
    try:
        value = _config_manager(ctx).get(key)
    except LSMError as e:
        handle_operation_error(console, "reading config", e)
    if value is None:
        console.print(f"[yellow]{key} is not set[/yellow]")
        raise typer.Exit(1)
    if isinstance(value, (dict, list)):
        print_json(console, value)
    else:
        console.print(str(value), markup=False, highlight=False, soft_wrap=True)


@config_app.command(name="set")
def config_set(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Dotted key, e.g. default.jobs"),
    value: str = typer.Argument(..., help="Value (parsed as YAML)"),
    global_: bool = typer.Option(False, "--global", "-g", help="Write the global ~/.lsmrc"),
) -> None:
    """[bold yellow]Settings[/bold yellow]: Set a value."""
    try:
        _config_manager(ctx).set(key, _parse_value(value), global_=global_)
    except LSMError as e:
        handle_operation_error(console, "writing config", e)
    console.print(f"[green]✓[/green] Set {key}")


@config_app.command(name="unset")
def config_unset(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Dotted key to remove"),
    global_: bool = typer.Option(False, "--global", "-g", help="Write the global ~/.lsmrc"),
) -> None:
    """[bold yellow]Settings[/bold yellow]: Remove a value."""
    try:
        _config_manager(ctx).unset(key, global_=global_)
    except LSMError as e:
        handle_operation_error(console, "writing config", e)
    console.print(f"[green]✓[/green] Unset {key}")


@config_app.command(name="list")
def config_list(ctx: typer.Context) -> None:
    """[bold yellow]Settings[/bold yellow]: Print the merged configuration."""
    try:
        data = _config_manager(ctx).get_all()
    except LSMError as e:
        handle_operation_error(console, "reading config", e)
    print_json(console, data)


# =============================================================================
# ENTRY POINT
# =============================================================================

def cli_main() -> None:  # pragma: no cover - entry point
    """Entry point for the lsm CLI application."""
    app()


if __name__ == "__main__":  # pragma: no cover
    cli_main()
