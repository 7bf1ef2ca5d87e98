# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.14
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/lsm/core/analysis.py

"""
Read-only reports over a repository's submodules.

All reports are derived from the manager's listings; detectors work on an
already-fetched snapshot and never call git themselves. A detector that
fails logs the problem and contributes an empty result instead of aborting
the whole report.
"""

from __future__ import annotations

import re
from collections import defaultdict
from typing import Callable, Optional, TypeVar

from loguru import logger

from lsm.core.git import GitmodulesEntry
from lsm.data.models import (
    AnalysisResult,
    ConflictInfo,
    DependencyTree,
    HealthCheck,
    HealthCheckResult,
    ListOptions,
    SubmoduleRecord,
    SubmoduleStatus,
)
from lsm.system.exceptions import LSMError

T = TypeVar("T")

DEFAULT_TREE_DEPTH = 10

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)
_SCP_RE = re.compile(r"^(?:[^@/]+@)?([^:/]+):(?!//)(.+)$")


def normalize_url(url: Optional[str]) -> Optional[str]:
    """Reduce a remote URL to ``host/owner/repo`` so equivalent remotes compare equal.

    ``git@github.com:o/r.git``, ``https://github.com/o/r`` and
    ``ssh://git@github.com/o/r.git`` all normalize to ``github.com/o/r``.
    """
    if not url or not url.strip():
        return None
    value = url.strip()
    if _SCHEME_RE.match(value):
        value = _SCHEME_RE.sub("", value)
        host, _, rest = value.partition("/")
        host = host.rpartition("@")[2]
        value = f"{host}/{rest}" if rest else host
    else:
        match = _SCP_RE.match(value)
        if match:
            value = f"{match.group(1)}/{match.group(2)}"
    value = value.rstrip("/")
    if value.endswith(".git"):
        value = value[: -len(".git")]
    return value.lower()


def _identity(record: SubmoduleRecord) -> str:
    return normalize_url(record.url) or record.path


def _parent_path(path: str, paths: list[str]) -> Optional[str]:
    candidates = [p for p in paths if path.startswith(p + "/")]
    return max(candidates, key=len) if candidates else None


def find_version_conflicts(records: list[SubmoduleRecord]) -> list[ConflictInfo]:
    """Paths sharing one remote but pinned at different commits."""
    groups: dict[str, list[SubmoduleRecord]] = defaultdict(list)
    for record in records:
        key = normalize_url(record.url)
        if key:
            groups[key].append(record)

    conflicts = []
    for key, members in groups.items():
        commits = sorted({member.commit for member in members})
        if len(commits) < 2:
            continue
        for member in members:
            others = ", ".join(m.path for m in members if m.path != member.path)
            conflicts.append(ConflictInfo(
                path=member.path,
                type="version",
                details=f"{key} pinned at {member.commit}; also used by {others} ({', '.join(commits)})",
            ))
    return conflicts


class AnalysisEngine:
    """Conflict, cycle and hygiene reports for one SubmoduleManager."""

    def __init__(self, manager) -> None:
        self.manager = manager

    # ---- analyze ----

    def analyze(self) -> AnalysisResult:
        records = self.manager.list(ListOptions(verbose=True, recursive=True))
        declared = self.manager.git.read_gitmodules()

        by_status = {status: 0 for status in SubmoduleStatus}
        for record in records:
            by_status[record.status] += 1

        return AnalysisResult(
            total=len(records),
            by_status=by_status,
            conflicts=self._guarded("conflict detection", self.detect_conflicts, records),
            circular=self._guarded("circular dependency detection", self.detect_circular, records),
            unused=self._guarded("unused detection", self.detect_unused, records, declared),
        )

    def _guarded(self, label: str, detector: Callable[..., list[T]], *args) -> list[T]:
        try:
            return detector(*args)
        except Exception as e:
            logger.warning(f"{label} failed: {e}")
            return []

    @staticmethod
    def detect_conflicts(records: list[SubmoduleRecord]) -> list[ConflictInfo]:
        conflicts: list[ConflictInfo] = []
        for record in records:
            declared = record.declared_branch
            # "." means "follow the superproject's branch"
            if declared and declared != "." and record.head_branch and declared != record.head_branch:
                conflicts.append(ConflictInfo(
                    path=record.path,
                    type="branch",
                    details=f"tracks branch {declared} but {record.head_branch} is checked out",
                ))
            if record.status is not SubmoduleStatus.NOT_INITIALIZED and not record.url:
                conflicts.append(ConflictInfo(
                    path=record.path,
                    type="url",
                    details="initialized but has no URL in .gitmodules",
                ))
        conflicts.extend(find_version_conflicts(records))
        return conflicts

    @staticmethod
    def detect_circular(records: list[SubmoduleRecord]) -> list[list[str]]:
        """Cycles in the nesting graph, each as the list of paths that closes it.

        A node whose identity (normalized URL, else path) matches one of its
        ancestors closes a cycle; traversal does not descend past it.
        """
        paths = [record.path for record in records]
        by_path = {record.path: record for record in records}
        children: dict[Optional[str], list[str]] = defaultdict(list)
        for path in paths:
            children[_parent_path(path, paths)].append(path)

        cycles: list[list[str]] = []
        # iterative DFS; each stack entry carries its own ancestor chain
        stack: list[tuple[str, list[str]]] = [(path, []) for path in reversed(children[None])]
        while stack:
            path, chain = stack.pop()
            identity = _identity(by_path[path])
            ancestor_ids = [_identity(by_path[p]) for p in chain]
            if identity in ancestor_ids:
                start = ancestor_ids.index(identity)
                cycles.append(chain[start:] + [path])
                continue
            for child in reversed(children.get(path, [])):
                stack.append((child, chain + [path]))
        return cycles

    @staticmethod
    def detect_unused(records: list[SubmoduleRecord], declared: dict[str, GitmodulesEntry]) -> list[str]:
        """Paths declared in .gitmodules that git does not list (no gitlink in the index)."""
        listed = {record.path for record in records}
        return sorted(
            entry.path for entry in declared.values()
            if entry.path and entry.path not in listed
        )

    # ---- tree ----

    def get_dependency_tree(self, max_depth: int = DEFAULT_TREE_DEPTH) -> DependencyTree:
        """Nested submodule tree, expanded level by level.

        Expansion stops at uninitialized submodules, at max_depth, and at any
        node whose remote already appears among its ancestors (marked
        ``truncated``). A level that cannot be listed becomes a leaf.
        """
        root = DependencyTree(name=self.manager.name)
        root_identity = normalize_url(self.manager.git.remote_url()) or str(self.manager.repo_path.resolve())
        root.children = self._tree_children(self.manager, "", {root_identity}, 1, max_depth)
        return root

    def _tree_children(self, manager, prefix: str, ancestors: set[str], depth: int, max_depth: int) -> list[DependencyTree]:
        records = manager.list()
        urls = {entry.path: entry.url for entry in manager.git.read_gitmodules().values() if entry.path}

        nodes = []
        for record in records:
            full_path = f"{prefix}{record.path}"
            node = DependencyTree(name=record.path.rsplit("/", 1)[-1], path=full_path)
            nodes.append(node)

            if record.status is SubmoduleStatus.NOT_INITIALIZED:
                continue
            identity = normalize_url(urls.get(record.path)) or full_path
            if identity in ancestors or depth >= max_depth:
                node.truncated = True
                continue

            try:
                node.children = self._tree_children(
                    manager.for_path(record.path),
                    f"{full_path}/",
                    ancestors | {identity},
                    depth + 1,
                    max_depth,
                )
            except LSMError as e:
                logger.debug(f"Could not list submodules of {full_path}: {e}")
        return nodes

    # ---- health ----

    def health_check(self) -> HealthCheckResult:
        cache: dict[str, list[SubmoduleRecord]] = {}

        def records() -> list[SubmoduleRecord]:
            if "records" not in cache:
                cache["records"] = self.manager.list(ListOptions(verbose=True))
            return cache["records"]

        checks = [
            self._run_check("Configuration File", self._check_config_file),
            self._run_check("URL Completeness", self._check_urls, records),
            self._run_check("Uncommitted Changes", self._check_uncommitted, records),
            self._run_check("Version Consistency", self._check_versions, records),
        ]
        return HealthCheckResult.from_checks(checks)

    def _run_check(self, name: str, check, *args) -> HealthCheck:
        try:
            return check(name, *args)
        except Exception as e:
            logger.warning(f"Health check '{name}' failed: {e}")
            return HealthCheck(name=name, status="fail", message=f"Check failed: {e}", details=str(e))

    def _check_config_file(self, name: str) -> HealthCheck:
        if not self.manager.git.gitmodules_exists():
            return HealthCheck(name=name, status="pass", message="No .gitmodules file; no submodules configured")
        try:
            self.manager.git.validate_gitmodules()
        except LSMError as e:
            return HealthCheck(name=name, status="fail", message="Invalid .gitmodules file", details=str(e))
        return HealthCheck(name=name, status="pass", message=".gitmodules is valid")

    def _check_urls(self, name: str, records) -> HealthCheck:
        missing = [record.path for record in records() if not record.url]
        if not missing:
            return HealthCheck(name=name, status="pass", message="All URLs are configured")
        return HealthCheck(
            name=name,
            status="warn",
            message=f"{len(missing)} submodule(s) have missing URLs",
            details=missing,
        )

    def _check_uncommitted(self, name: str, records) -> HealthCheck:
        dirty = [record.path for record in records() if record.uncommitted_changes]
        if not dirty:
            return HealthCheck(name=name, status="pass", message="No uncommitted changes")
        return HealthCheck(
            name=name,
            status="warn",
            message=f"{len(dirty)} submodule(s) have uncommitted changes",
            details=dirty,
        )

    def _check_versions(self, name: str, records) -> HealthCheck:
        conflicts = find_version_conflicts(records())
        if not conflicts:
            return HealthCheck(name=name, status="pass", message="All versions are consistent")
        return HealthCheck(
            name=name,
            status="warn",
            message=f"{len(conflicts)} submodule(s) share a remote at different commits",
            details=[c.path for c in conflicts],
        )
