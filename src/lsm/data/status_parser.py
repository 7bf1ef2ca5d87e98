# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.10
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/lsm/data/status_parser.py

"""
Parser for ``git submodule status`` output.

Each line is ``<flag><sha> <path>[ (<describe>)]`` where the flag is a space
(checked out at the pinned commit), ``-`` (not initialized), ``+`` (checked
out commit differs from the index) or ``U`` (merge conflict).
"""

import re
from dataclasses import dataclass
from typing import Iterator, Optional

from lsm.data.models import SubmoduleStatus


# the path may contain spaces, so it runs lazily up to an optional " (<describe>)"
_STATUS_LINE = re.compile(r"^([ +\-U])([0-9a-f]+)\s+(.+?)(?:\s+\((.+)\))?$")


@dataclass(frozen=True)
class StatusLine:
    status: str
    commit: str
    path: str
    branch: Optional[str] = None

    @property
    def submodule_status(self) -> SubmoduleStatus:
        return SubmoduleStatus.from_flag(self.status)


def parse_status_line(line: str) -> Optional[StatusLine]:
    """Parse one listing line, returning None for anything else."""
    match = _STATUS_LINE.match(line.rstrip())
    if not match:
        return None
    flag, commit, path, branch = match.groups()
    return StatusLine(status=flag, commit=commit, path=path, branch=branch)


def parse_status_output(output: str) -> Iterator[StatusLine]:
    """Yield parsed lines, skipping blank lines and noise."""
    for line in output.splitlines():
        if not line.strip():
            continue
        parsed = parse_status_line(line)
        if parsed is None:
            continue
        yield parsed
