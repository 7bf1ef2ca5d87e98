# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.08
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/lsm/system/exceptions.py

"""
LSM-specific exception classes.

Validation errors are raised before git is ever invoked, precondition errors
describe the state of a tracked submodule, and CommandError wraps a failed
git invocation with the command text and raw stderr.
"""


class LSMError(Exception):
    """Base exception for all lsm errors."""
    pass


class ConfigError(LSMError):
    """Raised when a configuration or batch file is malformed or unreadable."""

    def __init__(self, message: str, path: str = None):
        self.path = path
        super().__init__(message)


# === INPUT VALIDATION ===

class ValidationError(LSMError):
    """Raised when user-supplied input fails validation."""
    pass


class InvalidUrlError(ValidationError):
    """The repository URL does not match any accepted shape."""

    def __init__(self, url):
        self.url = url
        super().__init__(f"Invalid git URL: {url}")


class InvalidPathError(ValidationError):
    """The submodule path is empty, absolute, escapes the project or has illegal characters."""

    def __init__(self, path, reason: str = None):
        self.path = path
        self.reason = reason
        message = f"Invalid path: {path}"
        if reason:
            message += f" - {reason}"
        super().__init__(message)


# === SUBMODULE PRECONDITIONS ===

class SubmoduleError(LSMError):
    """Base class for errors about a specific submodule."""

    def __init__(self, message: str, path: str = None):
        self.path = path
        super().__init__(message)


class AlreadyExistsError(SubmoduleError):
    """Raised by add when the path is already a tracked submodule."""

    def __init__(self, path: str):
        super().__init__(f"Submodule already exists at path: {path}", path=path)


class NotFoundError(SubmoduleError):
    """Raised when the path is not a tracked submodule."""

    def __init__(self, path: str):
        super().__init__(f"Submodule not found at path: {path}", path=path)


class UncommittedChangesError(SubmoduleError):
    """Raised by remove when the submodule working tree is dirty."""

    def __init__(self, path: str):
        super().__init__(f"Submodule has uncommitted changes: {path}", path=path)


# === EXTERNAL TOOL ===

class CommandError(LSMError):
    """A git invocation exited non-zero or wrote unexpected text to stderr."""

    def __init__(self, command: str, stderr: str = "", returncode: int = None):
        self.command = command
        self.stderr = stderr
        self.returncode = returncode
        message = f"Git command failed: {command}"
        if stderr:
            message += f": {stderr.strip()}"
        super().__init__(message)
