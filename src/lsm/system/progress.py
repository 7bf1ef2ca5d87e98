# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.08
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/lsm/system/progress.py

"""
Progress events for long-running submodule operations.

Operations publish ProgressEvents on a ProgressBus; listeners are called
synchronously, on the emitting thread, in emission order. Each logical
operation emits zero or more ``progress`` events followed by one
``complete`` event. The Rich-based reporter is the CLI's listener.
"""

import threading
from dataclasses import dataclass
from typing import Callable, Literal, Optional

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TaskProgressColumn, TimeElapsedColumn


@dataclass(frozen=True)
class ProgressEvent:
    stage: str
    path: Optional[str] = None
    message: Optional[str] = None
    kind: Literal["progress", "complete"] = "progress"

    def describe(self) -> str:
        parts = [self.stage]
        if self.path:
            parts.append(self.path)
        if self.message:
            parts.append(f"({self.message})")
        return " ".join(parts)


ProgressListener = Callable[[ProgressEvent], None]

# complete stages that finish one item of a batch, successfully or not
BATCH_ITEM_STAGES = frozenset({"added", "updated", "batch-failed"})


class ProgressBus:
    """Publish/subscribe channel for ProgressEvents."""

    def __init__(self) -> None:
        self._listeners: list[ProgressListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """Register listener and return a callable that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: ProgressListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def emit(self, event: ProgressEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(event)

    def progress(self, stage: str, path: Optional[str] = None, message: Optional[str] = None) -> None:
        self.emit(ProgressEvent(stage=stage, path=path, message=message))

    def complete(self, stage: str, path: Optional[str] = None, message: Optional[str] = None) -> None:
        self.emit(ProgressEvent(stage=stage, path=path, message=message, kind="complete"))


class ConsoleProgressReporter:
    """Progress listener that renders events with Rich."""

    def __init__(self, console: Console, verbose: bool = False) -> None:
        self.console = console
        self.verbose = verbose
        self.progress = None
        self.batch_task = None

    def __call__(self, event: ProgressEvent) -> None:
        if self.progress is not None and self.batch_task is not None:
            if event.stage.startswith("batch-") and event.kind == "progress":
                self.progress.update(self.batch_task, description=f"[cyan]{event.describe()}")
            elif event.kind == "complete" and event.stage in BATCH_ITEM_STAGES:
                self.progress.update(self.batch_task, advance=1)
            return

        if not self.verbose:
            return
        if event.kind == "complete":
            self.console.print(f"[dim]✓ {event.describe()}[/dim]")
        else:
            self.console.print(f"[dim]{event.describe()}...[/dim]")

    def start_batch(self, total: Optional[int], description: str = "Processing submodules") -> None:
        """Show a progress bar advancing once per completed item; total=None is indeterminate."""
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            console=self.console,
            transient=not self.verbose,
        )
        self.progress.start()
        self.batch_task = self.progress.add_task(f"[cyan]{description}...", total=total)

    def stop_batch(self) -> None:
        if self.progress:
            self.progress.stop()
        self.progress = None
        self.batch_task = None
