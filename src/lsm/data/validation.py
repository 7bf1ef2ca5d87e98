# Author: PB & ChatGPT
# Maintainer: PB
# Original date: 2025.05.09
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/lsm/data/validation.py

import re

from lsm.system.exceptions import InvalidPathError, InvalidUrlError


# Global constants

_URL_PATTERNS = (
    re.compile(r"^https?://.+\.git$"),
    re.compile(r"^git@.+:.+\.git$"),
    re.compile(r"^ssh://.+\.git$"),
    re.compile(r"^git://.+\.git$"),
    re.compile(r"^https?://.+$"),
)

_ILLEGAL_CHARS = {
    '<', '>', ':', '"', '|', '?', '*',
    *[chr(i) for i in range(32)], chr(127)}  # Controls

_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")


def validate_url(url) -> None:
    """Raise InvalidUrlError unless url is an accepted git remote shape.

    Accepted: https/http, ssh:// and git:// URLs ending in .git, scp-style
    ``git@host:org/repo.git``, and bare http(s) URLs.
    """
    if not url or not isinstance(url, str):
        raise InvalidUrlError(url)

    if any(ch.isspace() for ch in url):
        raise InvalidUrlError(url)

    if not any(pattern.match(url) for pattern in _URL_PATTERNS):
        raise InvalidUrlError(url)


def check_path(path_str) -> tuple[bool, str]:
    """
    Check a submodule path string with:
    - Empty path checks
    - Absolute path checks (POSIX root, UNC/backslash root, drive letter)
    - Illegal character checks
    - Parent directory traversal checks
    """
    if not path_str or not isinstance(path_str, str) or not path_str.strip():
        return (False, "Path cannot be empty")

    if path_str.startswith(("/", "\\")) or _DRIVE_PREFIX.match(path_str):
        return (False, "Path must be relative")

    if set(path_str) & _ILLEGAL_CHARS:
        return (False, "Path contains illegal characters")

    if ".." in path_str:
        return (False, 'Path cannot contain ".."')

    return (True, "Path is valid")


def validate_path(path_str) -> None:
    """Raise InvalidPathError with the reason when check_path() rejects path_str."""
    is_valid, reason = check_path(path_str)
    if not is_valid:
        raise InvalidPathError(path_str, reason)


def normalize_path(path_str: str) -> str:
    """Use forward slashes and drop trailing separators."""
    return path_str.replace("\\", "/").rstrip("/")


# done
