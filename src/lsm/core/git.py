# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.11
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/lsm/core/git.py

"""
Git primitives used by the submodule manager.

Every method builds an argument list and hands it to an Executor bound to the
superproject root. Per-submodule probes use ``git -C <path>`` so they run
inside the submodule's own working tree.
"""

import shutil
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Optional

from loguru import logger

from lsm.data.models import UpdateOptions
from lsm.system.exceptions import ValidationError
from lsm.system.execution import CommandResult, Executor


GITMODULES: str = ".gitmodules"

_KEY_PREFIX = "submodule."
_KEY_FIELDS = ("path", "url", "branch")


@dataclass
class GitmodulesEntry:
    """One ``[submodule "<name>"]`` section of .gitmodules."""
    name: str
    path: Optional[str] = None
    url: Optional[str] = None
    branch: Optional[str] = None


def parse_gitmodules_listing(output: str) -> dict[str, GitmodulesEntry]:
    """Parse ``git config -f .gitmodules --list`` output into entries keyed by name.

    Keys look like ``submodule.<name>.<field>=<value>``; names may themselves
    contain dots, so the field is split off from the right.
    """
    entries: dict[str, GitmodulesEntry] = {}
    for line in output.splitlines():
        key, sep, value = line.partition("=")
        if not sep or not key.startswith(_KEY_PREFIX):
            continue
        name, _, field_name = key[len(_KEY_PREFIX):].rpartition(".")
        if not name or field_name not in _KEY_FIELDS:
            continue
        entry = entries.setdefault(name, GitmodulesEntry(name=name))
        setattr(entry, field_name, value.strip())
    return entries


class GitOperations:
    """Submodule-oriented git commands for one repository."""

    def __init__(self, executor: Executor, repo_path: Path) -> None:
        self.executor = executor
        self.repo_path = Path(repo_path)

    def run(self, args: list[str]) -> str:
        return self.executor.run(args, cwd=self.repo_path)

    def run_detailed(self, args: list[str]) -> CommandResult:
        return self.executor.run_detailed(args, cwd=self.repo_path)

    # ---- Repository metadata ----

    def git_dir(self) -> Path:
        output = self.run(["rev-parse", "--git-dir"]).strip()
        git_dir = Path(output)
        if not git_dir.is_absolute():
            git_dir = self.repo_path / git_dir
        return git_dir

    def read_gitmodules(self) -> dict[str, GitmodulesEntry]:
        """Declared submodules; an absent or unreadable .gitmodules reads as empty."""
        result = self.run_detailed(["config", "-f", GITMODULES, "--list"])
        if not result.success:
            logger.debug(f"No readable {GITMODULES}: {result.stderr}")
            return {}
        return parse_gitmodules_listing(result.stdout)

    def validate_gitmodules(self) -> str:
        """Raise CommandError when git cannot parse .gitmodules."""
        return self.run(["config", "-f", GITMODULES, "--list"])

    def gitmodules_exists(self) -> bool:
        return (self.repo_path / GITMODULES).is_file()

    def remote_url(self, remote: str = "origin") -> Optional[str]:
        result = self.run_detailed(["config", "--get", f"remote.{remote}.url"])
        if not result.success:
            return None
        return result.stdout.strip() or None

    # ---- Submodule commands ----

    def submodule_status(self, recursive: bool = False) -> str:
        args = ["submodule", "status"]
        if recursive:
            args.append("--recursive")
        return self.run(args)

    def submodule_add(
        self,
        url: str,
        path: str,
        branch: Optional[str] = None,
        depth: Optional[int] = None,
        force: bool = False,
    ) -> str:
        args = ["submodule", "add"]
        if branch:
            args += ["-b", branch]
        if depth:
            args += ["--depth", str(depth)]
        if force:
            args.append("--force")
        args += ["--", url, path]
        return self.run(args)

    def submodule_deinit(self, path: str) -> str:
        return self.run(["submodule", "deinit", "-f", "--", path])

    def module_metadata_dir(self, name: str) -> Path:
        """``<git-dir>/modules/<name>``, refusing names that resolve outside ``modules``.

        The name comes from .gitmodules; absolute names, ``..`` segments and
        symlinks out of the directory raise ValidationError.
        """
        parts = PurePosixPath(name.replace("\\", "/")).parts if name else ()
        if not parts or name.startswith(("/", "\\")) or ".." in parts:
            raise ValidationError(f"Unsafe submodule name: {name!r}")

        modules_root = (self.git_dir() / "modules").resolve()
        target = (modules_root / name).resolve()
        if target == modules_root or not target.is_relative_to(modules_root):
            raise ValidationError(f"Unsafe submodule name: {name!r}")
        return target

    def purge_module_metadata(self, modules_dir: Path) -> bool:
        """Delete a directory from module_metadata_dir(); returns True when something was removed."""
        if not modules_dir.exists():
            return False
        shutil.rmtree(modules_dir)
        logger.debug(f"Removed module metadata {modules_dir}")
        return True

    def remove_from_index(self, path: str, keep_files: bool = False) -> str:
        args = ["rm", "-f"]
        if keep_files:
            args.append("--cached")
        args += ["--", path]
        return self.run(args)

    def remove_gitmodules_section(self, name: str) -> CommandResult:
        result = self.run_detailed(["config", "-f", GITMODULES, "--remove-section", f"submodule.{name}"])
        if result.success:
            self.run_detailed(["add", GITMODULES])
        return result

    def submodule_update(self, path: Optional[str] = None, options: Optional[UpdateOptions] = None) -> str:
        options = options or UpdateOptions()
        args = ["submodule", "update"]
        if options.init:
            args.append("--init")
        if options.recursive:
            args.append("--recursive")
        if options.remote:
            args.append("--remote")
        if options.merge:
            args.append("--merge")
        if options.rebase:
            args.append("--rebase")
        if options.jobs:
            args += ["--jobs", str(options.jobs)]
        if path:
            args += ["--", path]
        return self.run(args)

    def submodule_sync(self, recursive: bool = True) -> str:
        args = ["submodule", "sync"]
        if recursive:
            args.append("--recursive")
        return self.run(args)

    def submodule_foreach(self, command: str, recursive: bool = True) -> str:
        args = ["submodule", "foreach"]
        if recursive:
            args.append("--recursive")
        args.append(command)
        return self.run(args)

    def checkout(self, path: str, ref: str) -> str:
        return self.run(["-C", path, "checkout", ref])

    # ---- Per-submodule probes ----

    def is_dirty(self, path: str) -> bool:
        return bool(self.run(["-C", path, "status", "--porcelain"]).strip())

    def count_commits(self, path: str, revision_range: str) -> int:
        output = self.run(["-C", path, "rev-list", "--count", revision_range]).strip()
        return int(output) if output.isdigit() else 0

    def ahead_count(self, path: str) -> int:
        return self.count_commits(path, "@{u}..HEAD")

    def behind_count(self, path: str) -> int:
        return self.count_commits(path, "HEAD..@{u}")

    def head_branch(self, path: str) -> Optional[str]:
        """Checked-out branch name, or None when HEAD is detached."""
        branch = self.run(["-C", path, "rev-parse", "--abbrev-ref", "HEAD"]).strip()
        if not branch or branch == "HEAD":
            return None
        return branch
