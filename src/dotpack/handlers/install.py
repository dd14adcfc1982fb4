"""Runs a pack's install script once per script content."""

from __future__ import annotations

import logging
import shlex
from typing import Sequence

from ..config import validate_handler_options
from ..filesystem import Filesystem
from ..models import ClearedItem, HandlerCategory, Operation, RuleMatch, RunCommand
from .base import ClearContext, Handler, sentinel_items, source_checksum

logger = logging.getLogger(__name__)


class InstallHandler(Handler):
    """Emits ``/bin/sh <script>`` guarded by ``<basename>.sentinel``.

    The script is re-run only when its SHA-256 changes. Clearing forgets the
    run records; nothing the script installed is undone.
    """

    name = "install"
    category = HandlerCategory.CODE_EXECUTION

    def __init__(self, fs: Filesystem) -> None:
        self.fs = fs

    @staticmethod
    def sentinel_name(match: RuleMatch) -> str:
        return f"{match.absolute_path.name}.sentinel"

    def to_operations(self, matches: Sequence[RuleMatch]) -> list[Operation]:
        operations: list[Operation] = []
        for match in matches:
            validate_handler_options(self.name, match.options)
            checksum = source_checksum(self.fs, match.absolute_path)
            operations.append(
                RunCommand(
                    pack=match.pack,
                    handler=self.name,
                    source=match.absolute_path,
                    command=f"/bin/sh {shlex.quote(str(match.absolute_path))}",
                    sentinel=self.sentinel_name(match),
                    checksum=checksum,
                )
            )
        logger.debug("install: %d matches -> %d operations", len(matches), len(operations))
        return operations

    def clear(self, ctx: ClearContext) -> list[ClearedItem]:
        return sentinel_items(ctx, self)

    def format_cleared_item(self, item: ClearedItem, dry_run: bool) -> str:
        verb = "Would forget" if dry_run else "Forgot"
        return f"{verb} {item.description} (installed software is left in place)"
