# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.10
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/lsm/data/models.py

"""
Typed records for submodule state, batch outcomes and analysis reports.

Records are views over git's live state and are rebuilt on every listing.
User-supplied add configurations are pydantic models so batch files and
presets are shape-checked before use.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


SHORT_COMMIT_LENGTH = 7


class SubmoduleStatus(str, Enum):
    UP_TO_DATE = "up-to-date"
    NOT_INITIALIZED = "not-initialized"
    MODIFIED = "modified"
    MERGE_CONFLICT = "merge-conflict"
    AHEAD = "ahead"
    BEHIND = "behind"
    DIVERGED = "diverged"

    @classmethod
    def from_flag(cls, flag: str) -> "SubmoduleStatus":
        """Map a ``git submodule status`` flag character to a status."""
        return {
            "-": cls.NOT_INITIALIZED,
            "+": cls.MODIFIED,
            "U": cls.MERGE_CONFLICT,
        }.get(flag, cls.UP_TO_DATE)


@dataclass
class SubmoduleRecord:
    """One tracked submodule as git currently reports it."""
    path: str
    full_commit: str
    status: SubmoduleStatus
    branch: Optional[str] = None
    url: Optional[str] = None
    uncommitted_changes: bool = False
    ahead: Optional[int] = None
    behind: Optional[int] = None
    # verbose-only signals used by conflict detection
    declared_branch: Optional[str] = None
    head_branch: Optional[str] = None

    @property
    def commit(self) -> str:
        return self.full_commit[:SHORT_COMMIT_LENGTH]

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["commit"] = self.commit
        return data


@dataclass
class DependencyTree:
    name: str
    path: Optional[str] = None
    children: list[DependencyTree] = field(default_factory=list)
    truncated: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "truncated": self.truncated,
            "children": [child.to_dict() for child in self.children],
        }


@dataclass
class BatchFailure:
    path: str
    error: str


@dataclass
class BatchResult:
    """Partition of a batch input into succeeded and failed paths."""
    success: list[str] = field(default_factory=list)
    failed: list[BatchFailure] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.success) + len(self.failed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": list(self.success),
            "failed": [asdict(f) for f in self.failed],
        }


@dataclass
class ConflictInfo:
    path: str
    type: Literal["version", "branch", "url"]
    details: str


@dataclass
class AnalysisResult:
    total: int
    by_status: dict[SubmoduleStatus, int]
    conflicts: list[ConflictInfo] = field(default_factory=list)
    circular: list[list[str]] = field(default_factory=list)
    unused: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "by_status": {status.value: count for status, count in self.by_status.items()},
            "conflicts": [asdict(c) for c in self.conflicts],
            "circular": [list(cycle) for cycle in self.circular],
            "unused": list(self.unused),
        }


@dataclass
class HealthCheck:
    name: str
    status: Literal["pass", "warn", "fail"]
    message: str
    details: Any = None


@dataclass
class HealthCheckResult:
    score: float
    checks: list[HealthCheck]
    summary: str

    @classmethod
    def from_checks(cls, checks: list[HealthCheck]) -> "HealthCheckResult":
        passed = sum(1 for check in checks if check.status == "pass")
        total = len(checks)
        score = 100.0 * passed / total if total else 100.0
        return cls(score=score, checks=checks, summary=f"{passed}/{total} checks passed")

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "summary": self.summary,
            "checks": [asdict(check) for check in self.checks],
        }


# ---- Operation options ----

@dataclass
class AddOptions:
    branch: Optional[str] = None
    tag: Optional[str] = None
    commit: Optional[str] = None
    depth: Optional[int] = None
    force: bool = False


@dataclass
class RemoveOptions:
    force: bool = False
    keep_files: bool = False


@dataclass
class UpdateOptions:
    init: bool = False
    recursive: bool = False
    remote: bool = False
    merge: bool = False
    rebase: bool = False
    jobs: Optional[int] = None


@dataclass
class ListOptions:
    verbose: bool = False
    recursive: bool = False


# ---- User-supplied configuration ----

class SubmoduleConfig(BaseModel):
    """One entry of a batch-add file or preset."""
    model_config = ConfigDict(extra="ignore")

    url: str
    path: str
    branch: Optional[str] = None
    tag: Optional[str] = None
    commit: Optional[str] = None
    depth: Optional[int] = Field(default=None, ge=1)
    force: bool = False

    def to_add_options(self) -> AddOptions:
        return AddOptions(
            branch=self.branch,
            tag=self.tag,
            commit=self.commit,
            depth=self.depth,
            force=self.force,
        )


class BatchConfig(BaseModel):
    submodules: list[SubmoduleConfig]
