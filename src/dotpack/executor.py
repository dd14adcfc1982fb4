"""Interprets operations against the DataStore and filesystem."""

from __future__ import annotations

import logging
from typing import Iterable

from .datastore import DataStore
from .errors import DotpackError, StateError
from .filesystem import Filesystem, lexists, symlink_points_to
from .models import CreateDataLink, CreateUserLink, ExecutionResult, Operation, OperationResult, RunCommand
from .paths import handler_deployed_kind

logger = logging.getLogger(__name__)


class OperationExecutor:
    """Runs operations in emission order, recording one result per operation.

    A failing operation is recorded and execution continues with the next one;
    the returned ``ExecutionResult`` carries the first error seen. In dry-run
    mode nothing is written and every result is a "Would ..." message.
    """

    def __init__(self, datastore: DataStore, fs: Filesystem, *, dry_run: bool = False, force: bool = False) -> None:
        self.datastore = datastore
        self.fs = fs
        self.dry_run = dry_run
        self.force = force

    def execute(self, operations: Iterable[Operation]) -> ExecutionResult:
        results: list[OperationResult] = []
        first_error: DotpackError | None = None

        for operation in operations:
            try:
                result = self._execute_one(operation)
            except DotpackError as exc:
                logger.debug("Operation %r failed: %s", operation, exc)
                result = OperationResult(operation=operation, success=False, message=str(exc), error=exc)
                if first_error is None:
                    first_error = exc
            results.append(result)

        return ExecutionResult(results=tuple(results), first_error=first_error)

    def _execute_one(self, operation: Operation) -> OperationResult:
        if isinstance(operation, CreateDataLink):
            return self._create_data_link(operation)
        if isinstance(operation, CreateUserLink):
            return self._create_user_link(operation)
        if isinstance(operation, RunCommand):
            return self._run_command(operation)
        raise DotpackError(f"Unsupported operation {operation!r}")

    def _create_data_link(self, operation: CreateDataLink) -> OperationResult:
        if self.dry_run:
            path = self.datastore.data_link_path(operation.pack, operation.handler, operation.source)
            return OperationResult(operation, True, f"Would create data link {operation.source} → {path}")

        path = self.datastore.create_data_link(operation.pack, operation.handler, operation.source)
        kind = handler_deployed_kind(operation.handler)
        if kind is not None:
            deployed = self.datastore.link_deployed(kind, operation.pack, path)
            logger.debug("Registered %s under %s", path, deployed)
        return OperationResult(operation, True, f"Created data link {operation.source} → {path}")

    def _create_user_link(self, operation: CreateUserLink) -> OperationResult:
        target = operation.target
        if self.dry_run:
            path = self.datastore.data_link_path(operation.pack, operation.handler, operation.source)
            message = f"Would create link {target} → {path}"
            if lexists(self.fs, target) and not symlink_points_to(self.fs, target, path):
                if self.force:
                    message += " (replacing the existing entry)"
                else:
                    message += " (blocked by an existing entry; use --force to replace it)"
            return OperationResult(operation, True, message)

        path = self.datastore.create_data_link(operation.pack, operation.handler, operation.source)
        changed = self.datastore.create_user_link(path, target, force=self.force)
        if not changed:
            return OperationResult(operation, True, f"Link {target} already points to {path}", skipped=True)
        return OperationResult(operation, True, f"Created link {target} → {path}")

    def _run_command(self, operation: RunCommand) -> OperationResult:
        if self.dry_run:
            if self._sentinel_current(operation):
                return OperationResult(
                    operation, True, f"Would skip: {operation.command} (already run for this content)", skipped=True
                )
            return OperationResult(operation, True, f"Would execute: {operation.command}")

        ran = self.datastore.run_and_record(
            operation.pack,
            operation.handler,
            operation.command,
            operation.sentinel,
            operation.checksum,
            cwd=operation.source.parent,
        )
        if not ran:
            return OperationResult(
                operation, True, f"Skipped: {operation.command} (already run for this content)", skipped=True
            )
        return OperationResult(operation, True, f"Executed: {operation.command}")

    def _sentinel_current(self, operation: RunCommand) -> bool:
        if not self.datastore.has_sentinel(operation.pack, operation.handler, operation.sentinel):
            return False
        try:
            return self.datastore.read_sentinel(operation.pack, operation.handler, operation.sentinel) == operation.checksum
        except StateError:
            return False
