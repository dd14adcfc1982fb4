"""Shared models and enums for dotpack."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Mapping, Union

if TYPE_CHECKING:
    from .config import PackConfig
    from .errors import DotpackError


class HandlerCategory(str, Enum):
    """How a handler's effects behave when run repeatedly."""

    CONFIGURATION = "configuration"
    CODE_EXECUTION = "code_execution"


class Selector(str, Enum):
    """Which handler categories a pipeline run covers."""

    CONFIGURATION_ONLY = "configuration"
    CODE_EXECUTION_ONLY = "code_execution"
    ALL = "all"

    def includes(self, category: HandlerCategory) -> bool:
        if self is Selector.ALL:
            return True
        return self.value == category.value


@dataclass(frozen=True, slots=True)
class Pack:
    """A named directory of related dotfiles deployed as a unit."""

    name: str
    path: Path
    config: PackConfig | None = None


@dataclass(frozen=True, slots=True)
class RuleMatch:
    """A file inside a pack paired with the handler that owns it."""

    pack: str
    relative_path: Path
    absolute_path: Path
    handler: str
    options: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class CreateDataLink:
    """Place a link to ``source`` inside the handler's per-pack state directory."""

    pack: str
    handler: str
    source: Path


@dataclass(frozen=True, slots=True)
class CreateUserLink:
    """Link ``target`` to the datastore link standing in for ``source``."""

    pack: str
    handler: str
    source: Path
    target: Path


@dataclass(frozen=True, slots=True)
class RunCommand:
    """Run ``command`` once per ``checksum`` and record ``sentinel``."""

    pack: str
    handler: str
    source: Path
    command: str
    sentinel: str
    checksum: str


Operation = Union[CreateDataLink, CreateUserLink, RunCommand]


@dataclass(frozen=True, slots=True)
class OperationResult:
    """Outcome of executing (or simulating) one operation."""

    operation: Operation
    success: bool
    message: str
    skipped: bool = False
    error: DotpackError | None = None


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """Per-operation results of one executor run plus the first failure."""

    results: tuple[OperationResult, ...]
    first_error: DotpackError | None = None

    @property
    def failed(self) -> bool:
        return self.first_error is not None

    @property
    def failure_count(self) -> int:
        return sum(1 for result in self.results if not result.success)


@dataclass(frozen=True, slots=True)
class HandlerRunResult:
    """Result of running one handler group for a pack."""

    handler: str
    category: HandlerCategory
    results: tuple[OperationResult, ...] = ()
    error: DotpackError | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None or any(not result.success for result in self.results)


@dataclass(frozen=True, slots=True)
class PackRunResult:
    """Aggregated pipeline outcome for a single pack."""

    pack: str
    handlers: tuple[HandlerRunResult, ...]

    @property
    def total(self) -> int:
        return sum(len(handler.results) for handler in self.handlers)

    @property
    def success(self) -> int:
        return sum(1 for handler in self.handlers for result in handler.results if result.success)

    @property
    def failure(self) -> int:
        operation_failures = sum(1 for handler in self.handlers for result in handler.results if not result.success)
        handler_failures = sum(1 for handler in self.handlers if handler.error is not None)
        return operation_failures + handler_failures

    @property
    def skipped(self) -> int:
        return sum(1 for handler in self.handlers for result in handler.results if result.skipped)

    @property
    def executed_handlers(self) -> tuple[str, ...]:
        return tuple(handler.handler for handler in self.handlers)

    @property
    def errors(self) -> tuple[DotpackError, ...]:
        found: list[DotpackError] = []
        for handler in self.handlers:
            if handler.error is not None:
                found.append(handler.error)
            found.extend(result.error for result in handler.results if result.error is not None)
        return tuple(found)

    @property
    def failed(self) -> bool:
        return self.failure > 0


@dataclass(frozen=True, slots=True)
class ClearedItem:
    """Something removed (or that would be removed) by a clear."""

    type: str
    path: Path
    description: str


@dataclass(frozen=True, slots=True)
class ConfirmationRequest:
    """A question a handler needs approved before a destructive clear."""

    id: str
    title: str
    description: str
    items: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class HandlerClearResult:
    """Outcome of clearing one handler's deployment for a pack."""

    handler: str
    items: tuple[ClearedItem, ...] = ()
    state_removed: bool = False
    confirmed: bool = True
    error: DotpackError | None = None


@dataclass(frozen=True, slots=True)
class PackClearResult:
    """All handler clears performed for a pack."""

    pack: str
    handlers: tuple[HandlerClearResult, ...]

    @property
    def items(self) -> tuple[ClearedItem, ...]:
        return tuple(item for handler in self.handlers for item in handler.items)

    @property
    def errors(self) -> tuple[DotpackError, ...]:
        return tuple(handler.error for handler in self.handlers if handler.error is not None)

    @property
    def failed(self) -> bool:
        return bool(self.errors)


class StatusState(str, Enum):
    """Deployment states reported by ``dotpack status``."""

    DEPLOYED = "deployed"
    PENDING = "pending"
    OUTDATED = "outdated"
    CONFLICT = "conflict"
    BROKEN = "broken"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class StatusEntry:
    """Status information for one matched file."""

    pack: str
    relative_path: Path
    handler: str
    state: StatusState
    details: str | None = None


@dataclass(frozen=True, slots=True)
class StatusReport:
    """Collection of status results for a set of packs."""

    entries: tuple[StatusEntry, ...]


@dataclass(frozen=True, slots=True)
class OnResult:
    """Outcome of ``dotpack on`` across the selected packs."""

    packs: tuple[PackRunResult, ...]
    shell_init_installed: bool = False
    dry_run: bool = False

    @property
    def results(self) -> tuple[OperationResult, ...]:
        return tuple(result for pack in self.packs for handler in pack.handlers for result in handler.results)

    @property
    def errors(self) -> tuple[DotpackError, ...]:
        return tuple(error for pack in self.packs for error in pack.errors)

    @property
    def failed(self) -> bool:
        return any(pack.failed for pack in self.packs)


@dataclass(frozen=True, slots=True)
class OffResult:
    """Outcome of ``dotpack off`` across the selected packs."""

    packs: tuple[PackClearResult, ...]
    dry_run: bool = False

    @property
    def items(self) -> tuple[ClearedItem, ...]:
        return tuple(item for pack in self.packs for item in pack.items)

    @property
    def errors(self) -> tuple[DotpackError, ...]:
        return tuple(error for pack in self.packs for error in pack.errors)

    @property
    def failed(self) -> bool:
        return any(pack.failed for pack in self.packs)
