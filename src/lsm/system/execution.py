# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.07
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/lsm/system/execution.py

"""
Command execution boundary for the external git binary.

Callers hand over argument fragments only; the executor prepends the fixed
tool invocation and never goes through a shell. Output is captured whole and
rejected (not truncated) when it exceeds the configured limit, so a status
listing is never parsed from a partial buffer.
"""

import re
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Sequence

from loguru import logger

from lsm.system.exceptions import CommandError


MAX_OUTPUT_BYTES = 10 * 1024 * 1024

# git writes progress, hints and advice to stderr on successful runs
INFORMATIONAL_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"^warning:",
        r"^hint:",
        r"^note:",
        r"^Cloning into",
        r"^Submodule path",
        r"^Submodule '.*' .*registered for path",
        r"^Synchronizing submodule",
        r"^Entering '",
        r"^Switched to",
        r"^HEAD is now at",
        r"^Already on",
        r"^Your branch",
        r"^Previous HEAD position",
        r"^From ",
        r"^remote:",
        r"^Cleared directory",
    )
)


@dataclass
class CommandResult:
    """Outcome of one external command invocation."""
    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0


class Executor(Protocol):
    """Narrow interface the orchestration layer depends on.

    Anything providing these two methods can stand in for git, which is how
    the test suite scripts canned listing output.
    """

    def run(self, args: Sequence[str], cwd: Optional[Path] = None) -> str:
        """Run the tool and return stdout, raising CommandError on failure."""
        ...

    def run_detailed(self, args: Sequence[str], cwd: Optional[Path] = None) -> CommandResult:
        """Run the tool and always return a CommandResult, never raising."""
        ...


def is_informational(stderr: str) -> bool:
    """True when stderr only carries git's informational chatter.

    The first non-empty line decides: git prefixes real failures with
    ``fatal:``/``error:`` or prints them bare, while progress and advice start
    with one of the recognized prefixes.
    """
    for line in stderr.splitlines():
        line = line.strip()
        if not line:
            continue
        return any(pattern.search(line) for pattern in INFORMATIONAL_PATTERNS)
    return True


class CommandExecutor:
    """Runs ``<tool> <args...>`` as a subprocess with bounded output."""

    def __init__(
        self,
        tool: str = "git",
        repo_path: Optional[Path] = None,
        max_output_bytes: int = MAX_OUTPUT_BYTES,
        timeout: Optional[float] = None,
    ) -> None:
        self.tool = tool
        self.repo_path = Path(repo_path) if repo_path else Path.cwd()
        self.max_output_bytes = max_output_bytes
        self.timeout = timeout

    def build_command(self, args: Sequence[str]) -> list[str]:
        return [self.tool, *[str(arg) for arg in args]]

    def format_command(self, args: Sequence[str]) -> str:
        return shlex.join(self.build_command(args))

    def _spawn(self, args: Sequence[str], cwd: Optional[Path]) -> CommandResult:
        cmd = self.build_command(args)
        workdir = Path(cwd) if cwd else self.repo_path
        logger.debug(f"Running: {shlex.join(cmd)} (cwd={workdir})")
        proc = subprocess.run(
            cmd,
            cwd=workdir,
            capture_output=True,
            text=True,
            timeout=self.timeout,
        )
        return CommandResult(
            returncode=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
        )

    def _oversized(self, result: CommandResult) -> bool:
        size = len(result.stdout.encode("utf-8", errors="replace"))
        size += len(result.stderr.encode("utf-8", errors="replace"))
        return size > self.max_output_bytes

    def run(self, args: Sequence[str], cwd: Optional[Path] = None) -> str:
        """Run the tool and return stdout with trailing newlines removed.

        Leading whitespace is kept: ``git submodule status`` uses a leading
        space as the up-to-date flag.

        Raises:
            CommandError: on spawn failure, timeout, oversized output,
                non-zero exit, or non-informational stderr.
        """
        command = self.format_command(args)
        try:
            result = self._spawn(args, cwd)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise CommandError(command, str(e)) from e

        if self._oversized(result):
            raise CommandError(
                command,
                f"output exceeded {self.max_output_bytes} bytes",
                result.returncode,
            )

        if not result.success:
            stderr = result.stderr.strip() or f"exit code {result.returncode}"
            raise CommandError(command, stderr, result.returncode)

        if result.stderr.strip():
            if not is_informational(result.stderr):
                raise CommandError(command, result.stderr.strip(), result.returncode)
            logger.debug(f"{command}: {result.stderr.strip()}")

        return result.stdout.rstrip("\n")

    def run_detailed(self, args: Sequence[str], cwd: Optional[Path] = None) -> CommandResult:
        """Best-effort variant of run(); failures are reported, never raised."""
        try:
            result = self._spawn(args, cwd)
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug(f"{self.format_command(args)} could not run: {e}")
            return CommandResult(returncode=-1, stdout="", stderr=str(e))

        if self._oversized(result):
            return CommandResult(
                returncode=-1,
                stdout="",
                stderr=f"output exceeded {self.max_output_bytes} bytes",
            )

        return CommandResult(
            returncode=result.returncode,
            stdout=result.stdout.rstrip("\n"),
            stderr=result.stderr.strip(),
        )
