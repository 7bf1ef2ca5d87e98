# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.12
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/lsm/core/pool.py

"""
Fixed-size worker pool for batch submodule operations.

Each worker runs one item's operation to completion before taking the next,
so at most ``jobs`` items are in flight. An item's exception is recorded in
the BatchResult and never reaches sibling items.
"""

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Iterable, TypeVar

from loguru import logger

from lsm.data.models import BatchFailure, BatchResult


T = TypeVar("T")


class WorkerPool:
    """Runs an operation over items with bounded concurrency."""

    def __init__(self, jobs: int) -> None:
        if jobs < 1:
            raise ValueError(f"Worker pool needs at least one job, got {jobs}")
        self.jobs = jobs

    def run(
        self,
        items: Iterable[T],
        key: Callable[[T], str],
        operation: Callable[[T], object],
    ) -> BatchResult:
        """Apply operation to every item and partition the outcomes by key(item)."""
        result = BatchResult()
        lock = threading.Lock()

        def task(item: T) -> None:
            path = key(item)
            try:
                operation(item)
            except Exception as e:  # item failures belong to the partition, not the caller
                logger.warning(f"{path}: {e}")
                with lock:
                    result.failed.append(BatchFailure(path=path, error=str(e) or type(e).__name__))
            else:
                with lock:
                    result.success.append(path)

        with ThreadPoolExecutor(max_workers=self.jobs) as executor:
            futures = [executor.submit(task, item) for item in items]
            for future in as_completed(futures):
                # task() swallows item errors, so anything raised here is the pool breaking
                future.result()

        logger.debug(f"Batch finished: {len(result.success)} succeeded, {len(result.failed)} failed")
        return result
