# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.02
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# tests/conftest.py

"""
Shared test fixtures for the lsm test suite.

FakeExecutor stands in for the git binary: tests script the stdout (or the
error) for an argument prefix in a given working directory, and every call is
recorded so the exact git invocations can be asserted.
"""

import threading
from pathlib import Path
from typing import Callable, Optional, Union

import pytest
from loguru import logger

from lsm.config.manager import ConfigManager
from lsm.core.manager import SubmoduleManager
from lsm.system.exceptions import CommandError
from lsm.system.execution import CommandResult
from lsm.system.progress import ProgressEvent


Response = Union[str, Exception, Callable[[tuple], Union[str, Exception]]]


class FakeExecutor:
    """Scripted Executor keyed by (relative cwd, argument prefix)."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.responses: dict[tuple[str, tuple], Response] = {}
        self.calls: list[tuple[str, tuple]] = []
        self._lock = threading.Lock()

    def script(self, args, output: Response = "", cwd: str = "") -> None:
        self.responses[(cwd, tuple(args))] = output

    def fail(self, args, stderr: str = "fatal: scripted failure", cwd: str = "") -> None:
        self.script(args, CommandError("git " + " ".join(args), stderr, 128), cwd=cwd)

    def script_sequence(self, args, outputs: list, cwd: str = "") -> None:
        """Return outputs in order on successive calls; the last one repeats."""
        remaining = list(outputs)

        def next_output(_args):
            return remaining.pop(0) if len(remaining) > 1 else remaining[0]

        self.script(args, next_output, cwd=cwd)

    def _relative(self, cwd: Optional[Path]) -> str:
        if cwd is None:
            return ""
        rel = Path(cwd).relative_to(self.root).as_posix()
        return "" if rel == "." else rel

    def _lookup(self, args, cwd) -> Union[str, Exception]:
        key = tuple(str(a) for a in args)
        rel = self._relative(cwd)
        with self._lock:
            self.calls.append((rel, key))
            for n in range(len(key), 0, -1):
                response = self.responses.get((rel, key[:n]))
                if response is not None:
                    return response(key) if callable(response) else response
        return ""

    def run(self, args, cwd=None) -> str:
        response = self._lookup(args, cwd)
        if isinstance(response, Exception):
            raise response
        return response

    def run_detailed(self, args, cwd=None) -> CommandResult:
        response = self._lookup(args, cwd)
        if isinstance(response, Exception):
            return CommandResult(returncode=1, stdout="", stderr=str(response))
        return CommandResult(returncode=0, stdout=response, stderr="")

    def called(self, *args, cwd: str = "") -> bool:
        return (cwd, tuple(args)) in self.calls

    def commands(self, cwd: Optional[str] = None) -> list[tuple]:
        return [args for rel, args in self.calls if cwd is None or rel == cwd]


def gitmodules_listing(*entries: tuple) -> str:
    """Render ``git config -f .gitmodules --list`` output.

    Each entry is (name, path, url) or (name, path, url, branch).
    """
    lines = []
    for entry in entries:
        name, path, url = entry[:3]
        lines.append(f"submodule.{name}.path={path}")
        if url:
            lines.append(f"submodule.{name}.url={url}")
        if len(entry) > 3 and entry[3]:
            lines.append(f"submodule.{name}.branch={entry[3]}")
    return "\n".join(lines)


GITMODULES_LIST = ("config", "-f", ".gitmodules", "--list")
STATUS = ("submodule", "status")
STATUS_RECURSIVE = ("submodule", "status", "--recursive")


@pytest.fixture(autouse=True)
def isolated_config_home(tmp_path, monkeypatch):
    """Keep every test away from the real ~/.lsmrc."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("LSM_CONFIG_HOME", str(home))
    return home


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logger.remove()


@pytest.fixture
def repo(tmp_path):
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def fake_git(repo):
    executor = FakeExecutor(repo)
    executor.script(["rev-parse", "--git-dir"], ".git")
    return executor


@pytest.fixture
def config(repo, isolated_config_home):
    return ConfigManager(repo, global_path=isolated_config_home / ".lsmrc")


@pytest.fixture
def manager(repo, fake_git, config):
    return SubmoduleManager(repo, executor=fake_git, config=config)


@pytest.fixture
def events(manager):
    """Every progress event the manager emits, in order."""
    received: list[ProgressEvent] = []
    manager.subscribe(received.append)
    return received
