"""Core package for the dotpack project."""

from .cli import app, run
from .config import PackConfig, RootConfig, Rule, Settings
from .datastore import DataStore
from .errors import (
    ConfigError,
    ConflictError,
    DotpackError,
    ExecError,
    FilesystemError,
    NotFoundError,
    StateError,
)
from .filesystem import MemoryFilesystem, OSFilesystem
from .manager import DotpackManager
from .models import (
    ClearedItem,
    CreateDataLink,
    CreateUserLink,
    HandlerCategory,
    OffResult,
    OnResult,
    Pack,
    RuleMatch,
    RunCommand,
    Selector,
    StatusEntry,
    StatusReport,
    StatusState,
)
from .paths import Paths

__all__ = [
    "PackConfig",
    "RootConfig",
    "Rule",
    "Settings",
    "DataStore",
    "DotpackManager",
    "DotpackError",
    "ConfigError",
    "ConflictError",
    "ExecError",
    "FilesystemError",
    "NotFoundError",
    "StateError",
    "MemoryFilesystem",
    "OSFilesystem",
    "Paths",
    "ClearedItem",
    "CreateDataLink",
    "CreateUserLink",
    "HandlerCategory",
    "OffResult",
    "OnResult",
    "Pack",
    "RuleMatch",
    "RunCommand",
    "Selector",
    "StatusEntry",
    "StatusReport",
    "StatusState",
    "app",
    "run",
]
