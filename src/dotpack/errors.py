"""Exception hierarchy for dotpack."""

from __future__ import annotations


class DotpackError(RuntimeError):
    """Base class for every failure raised by the deployment engine."""

    kind = "internal"


class NotFoundError(DotpackError):
    """Raised when a pack or a source file does not exist."""

    kind = "not_found"


class ConfigError(DotpackError):
    """Raised when a configuration file or handler option is invalid."""

    kind = "config"


class ConflictError(DotpackError):
    """Raised when two sources want the same target, or a target is occupied."""

    kind = "conflict"


class FilesystemError(DotpackError):
    """Raised when a filesystem call fails."""

    kind = "filesystem"


class ExecError(DotpackError):
    """Raised when a provisioning command exits with a non-zero status."""

    kind = "exec"

    def __init__(self, message: str, *, returncode: int | None = None) -> None:
        super().__init__(message)
        self.returncode = returncode


class StateError(DotpackError):
    """Raised when recorded state (a sentinel) cannot be read or parsed."""

    kind = "state"
