# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.12
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/lsm/core/manager.py

"""
Submodule orchestration: the façade the CLI and any other front end call.

Every read view is derived from a fresh ``git submodule status`` listing; the
manager keeps no submodule table of its own. Mutations validate their inputs
before any git invocation and publish progress events on the manager's bus.
"""

from __future__ import annotations

import shlex
import threading
from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional, Union

from loguru import logger

from lsm.config.manager import ConfigManager
from lsm.core.git import GitmodulesEntry, GitOperations
from lsm.core.pool import WorkerPool
from lsm.data.models import (
    AddOptions,
    BatchResult,
    ListOptions,
    RemoveOptions,
    SubmoduleConfig,
    SubmoduleRecord,
    SubmoduleStatus,
    UpdateOptions,
)
from lsm.data.status_parser import parse_status_output
from lsm.data.validation import normalize_path, validate_path, validate_url
from lsm.system.exceptions import (
    AlreadyExistsError,
    ConfigError,
    LSMError,
    NotFoundError,
    UncommittedChangesError,
    ValidationError,
)
from lsm.system.execution import CommandExecutor, Executor
from lsm.system.progress import ProgressBus, ProgressListener


def derive_status(flag_status: SubmoduleStatus, dirty: bool, ahead: int, behind: int) -> SubmoduleStatus:
    """Combine the listing flag with the verbose probes.

    ahead/behind/diverged can only come out of here, so a non-verbose listing
    never reports them.
    """
    if flag_status in (SubmoduleStatus.NOT_INITIALIZED, SubmoduleStatus.MERGE_CONFLICT):
        return flag_status
    if flag_status is SubmoduleStatus.MODIFIED or dirty:
        return SubmoduleStatus.MODIFIED
    if ahead > 0 and behind > 0:
        return SubmoduleStatus.DIVERGED
    if ahead > 0:
        return SubmoduleStatus.AHEAD
    if behind > 0:
        return SubmoduleStatus.BEHIND
    return SubmoduleStatus.UP_TO_DATE


def _validate_ref(ref: str, what: str) -> None:
    if not ref or not isinstance(ref, str) or not ref.strip():
        raise ValidationError(f"{what} cannot be empty")
    if ref.startswith("-") or any(ch.isspace() for ch in ref):
        raise ValidationError(f"Invalid {what.lower()}: {ref}")


class SubmoduleManager:
    """Add, remove, list, update and audit the submodules of one repository."""

    def __init__(
        self,
        repo_path: Optional[Path] = None,
        executor: Optional[Executor] = None,
        config: Optional[ConfigManager] = None,
        events: Optional[ProgressBus] = None,
    ) -> None:
        self.repo_path = Path(repo_path) if repo_path else Path.cwd()
        self.executor = executor or CommandExecutor(repo_path=self.repo_path)
        self.config = config or ConfigManager(self.repo_path)
        self.events = events or ProgressBus()
        self.git = GitOperations(self.executor, self.repo_path)
        # one writer at a time for the superproject index and .gitmodules
        self._index_lock = threading.Lock()

    @property
    def name(self) -> str:
        return self.repo_path.resolve().name or str(self.repo_path)

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        return self.events.subscribe(listener)

    def unsubscribe(self, listener: ProgressListener) -> None:
        self.events.unsubscribe(listener)

    def for_path(self, path: str) -> SubmoduleManager:
        """Manager rooted inside a submodule, sharing executor, config and events."""
        return SubmoduleManager(
            self.repo_path / path,
            executor=self.executor,
            config=self.config,
            events=self.events,
        )

    # ---- Tracking ----

    def find_entry(self, path: str) -> Optional[GitmodulesEntry]:
        for entry in self.git.read_gitmodules().values():
            if entry.path == path:
                return entry
        return None

    def is_tracked(self, path: str) -> bool:
        return self.find_entry(path) is not None

    def is_initialized(self, path: str) -> bool:
        # a checked-out submodule has a .git file (or directory) at its root
        return (self.repo_path / path / ".git").exists()

    def has_uncommitted_changes(self, path: str) -> bool:
        return self._safe_probe(self.git.is_dirty, path, False)

    def _safe_probe(self, probe, path: str, default):
        try:
            return probe(path)
        except (LSMError, ValueError) as e:
            logger.debug(f"Probe {probe.__name__} failed for {path}: {e}")
            return default

    # ---- Mutations ----

    def add(self, url: str, path: str, options: Optional[AddOptions] = None) -> None:
        """Register url as a submodule at path, optionally pinned to a tag or commit."""
        options = options or AddOptions()
        validate_url(url)
        validate_path(path)
        path = normalize_path(path)

        tracked = self.is_tracked(path)
        if tracked and not options.force:
            raise AlreadyExistsError(path)

        if tracked:
            self.events.progress("removing-old", path)
            self.remove(path, RemoveOptions(force=True))

        self.events.progress("adding", path)
        logger.info(f"Adding submodule {path} from {url}")
        try:
            with self._index_lock:
                self.git.submodule_add(
                    url,
                    path,
                    branch=options.branch,
                    depth=options.depth,
                    force=options.force,
                )
            target = options.tag or options.commit
            if target:
                self.git.checkout(path, target)
        except LSMError:
            with self._index_lock:
                self._rollback_add(path)
            raise

        self.events.complete("added", path)

    def _rollback_add(self, path: str) -> None:
        """Undo a partially registered add so the path is not left half-tracked."""
        entry = self.find_entry(path)
        if entry is None:
            return
        logger.warning(f"Rolling back partial add of {path}")
        self.git.run_detailed(["submodule", "deinit", "-f", "--", path])
        self.git.run_detailed(["rm", "-f", "--", path])
        self.git.remove_gitmodules_section(entry.name)
        try:
            self.git.purge_module_metadata(self.git.module_metadata_dir(entry.name))
        except (LSMError, OSError) as e:
            logger.warning(f"Could not purge module metadata for {path}: {e}")

    def remove(self, path: str, options: Optional[RemoveOptions] = None) -> None:
        """Deinitialize and untrack the submodule at path."""
        options = options or RemoveOptions()
        validate_path(path)
        path = normalize_path(path)

        entry = self.find_entry(path)
        if entry is None:
            raise NotFoundError(path)

        if not options.force and self.is_initialized(path) and self.has_uncommitted_changes(path):
            raise UncommittedChangesError(path)

        metadata_dir = self.git.module_metadata_dir(entry.name)

        self.events.progress("removing", path)
        logger.info(f"Removing submodule {path}")
        with self._index_lock:
            self.git.submodule_deinit(path)
            self.git.purge_module_metadata(metadata_dir)
            self.git.remove_from_index(path, keep_files=options.keep_files)
            if options.keep_files:
                self.git.remove_gitmodules_section(entry.name)
        self.events.complete("removed", path)

    def update(self, path: Optional[str] = None, options: Optional[UpdateOptions] = None) -> None:
        options = options or UpdateOptions()
        if path:
            validate_path(path)
            path = normalize_path(path)
        jobs = self.config.resolve_jobs(options.jobs)

        self.events.progress("updating", path)
        logger.info(f"Updating {path or 'all submodules'} with {jobs} job(s)")
        self.git.submodule_update(path, replace(options, jobs=jobs))
        self.events.complete("updated", path)

    def sync(self) -> None:
        self.events.progress("syncing")
        self.git.submodule_sync(recursive=True)
        self.events.complete("synced")

    def foreach(self, command: str) -> str:
        """Run a shell command in every submodule, recursively; returns git's output."""
        if not command or not command.strip():
            raise ValidationError("foreach command cannot be empty")
        self.events.progress("executing", message=command)
        output = self.git.submodule_foreach(command, recursive=True)
        self.events.complete("executed", message=command)
        return output

    def checkout(self, branch: str, path: Optional[str] = None) -> None:
        _validate_ref(branch, "Branch")
        if path is None:
            self.foreach(f"git checkout {shlex.quote(branch)}")
            return

        validate_path(path)
        path = normalize_path(path)
        self.events.progress("checkout", path, message=branch)
        self.git.checkout(path, branch)
        self.events.complete("checkout", path, message=branch)

    # ---- Reads ----

    def list(self, options: Optional[ListOptions] = None) -> list[SubmoduleRecord]:
        """Current submodules, recomputed from git on every call."""
        options = options or ListOptions()
        output = self.git.submodule_status(recursive=options.recursive)
        records = [
            SubmoduleRecord(
                path=line.path,
                full_commit=line.commit,
                status=line.submodule_status,
                branch=line.branch,
            )
            for line in parse_status_output(output)
        ]

        if options.verbose:
            declared = self._declared_entries(records)
            for record in records:
                self._probe_record(record, declared.get(record.path))

        return records

    def status(self, path: Optional[str] = None) -> list[SubmoduleRecord]:
        records = self.list(ListOptions(verbose=True))
        if path is None:
            return records
        target = normalize_path(path)
        return [record for record in records if record.path == target]

    def _declared_entries(self, records: list[SubmoduleRecord]) -> dict[str, GitmodulesEntry]:
        """Map listing paths to their .gitmodules entries, nested ones included.

        A nested path ``a/b`` is declared in ``a/.gitmodules`` as ``b``.
        """
        by_parent: dict[str, dict[str, GitmodulesEntry]] = {}

        def entries_for(parent: str) -> dict[str, GitmodulesEntry]:
            if parent not in by_parent:
                git = self.git if not parent else GitOperations(self.executor, self.repo_path / parent)
                by_parent[parent] = {
                    entry.path: entry for entry in git.read_gitmodules().values() if entry.path
                }
            return by_parent[parent]

        paths = [record.path for record in records]
        declared: dict[str, GitmodulesEntry] = {}
        for path in paths:
            parent = max(
                (p for p in paths if path.startswith(p + "/")),
                key=len,
                default="",
            )
            relative = path[len(parent) + 1:] if parent else path
            entry = entries_for(parent).get(relative)
            if entry is not None:
                declared[path] = entry
        return declared

    def _probe_record(self, record: SubmoduleRecord, entry: Optional[GitmodulesEntry]) -> None:
        record.url = entry.url if entry else None
        record.declared_branch = entry.branch if entry else None

        if record.status is SubmoduleStatus.NOT_INITIALIZED:
            return

        dirty = self._safe_probe(self.git.is_dirty, record.path, False)
        ahead = self._safe_probe(self.git.ahead_count, record.path, 0)
        behind = self._safe_probe(self.git.behind_count, record.path, 0)

        record.uncommitted_changes = dirty
        record.ahead = ahead or None
        record.behind = behind or None
        record.head_branch = self._safe_probe(self.git.head_branch, record.path, None)
        record.status = derive_status(record.status, dirty, ahead, behind)

    # ---- Batch operations ----

    def batch_add(
        self,
        configs: list[Union[SubmoduleConfig, dict]],
        jobs: Optional[int] = None,
    ) -> BatchResult:
        """Add every config concurrently; each failure is isolated to its own entry."""
        pool = WorkerPool(self.config.resolve_jobs(jobs))

        def add_one(entry: Union[SubmoduleConfig, dict]) -> None:
            path = _config_path(entry)
            self.events.progress("batch-adding", path)
            try:
                config = entry if isinstance(entry, SubmoduleConfig) else SubmoduleConfig.model_validate(entry)
                self.add(config.url, config.path, config.to_add_options())
            except Exception as e:
                self.events.complete("batch-failed", path, message=str(e) or type(e).__name__)
                raise

        result = pool.run(configs, key=_config_path, operation=add_one)
        self.events.complete(
            "batch-added",
            message=f"{len(result.success)} added, {len(result.failed)} failed",
        )
        return result

    def batch_update(self, options: Optional[UpdateOptions] = None) -> BatchResult:
        """Update each listed submodule as its own item."""
        options = options or UpdateOptions()
        pool = WorkerPool(self.config.resolve_jobs(options.jobs))
        records = self.list()

        def update_one(record: SubmoduleRecord) -> None:
            self.events.progress("batch-updating", record.path)
            try:
                self.update(record.path, options)
            except Exception as e:
                self.events.complete("batch-failed", record.path, message=str(e) or type(e).__name__)
                raise

        result = pool.run(records, key=lambda record: record.path, operation=update_one)
        self.events.complete(
            "batch-updated",
            message=f"{len(result.success)} updated, {len(result.failed)} failed",
        )
        return result

    def add_preset(self, name: str, jobs: Optional[int] = None) -> BatchResult:
        configs = self.config.get_preset(name)
        if configs is None:
            raise ConfigError(f"Unknown preset: {name}")
        return self.batch_add(configs, jobs=jobs)

    def run_alias(self, name: str) -> str:
        command = self.config.get_alias(name)
        if not command:
            raise ConfigError(f"Unknown alias: {name}")
        return self.foreach(command)


def _config_path(entry: Union[SubmoduleConfig, dict]) -> str:
    if isinstance(entry, SubmoduleConfig):
        return entry.path
    if isinstance(entry, dict):
        return str(entry.get("path", "<unknown>"))
    return repr(entry)
