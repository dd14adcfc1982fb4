"""Registers shell scripts to be sourced by the shell-init script."""

from __future__ import annotations

import logging
from typing import Sequence

from ..config import validate_handler_options
from ..models import ClearedItem, CreateDataLink, HandlerCategory, Operation, RuleMatch
from .base import ClearContext, Handler, clear_deployed_links

logger = logging.getLogger(__name__)


class ShellHandler(Handler):
    name = "shell"
    category = HandlerCategory.CONFIGURATION

    def to_operations(self, matches: Sequence[RuleMatch]) -> list[Operation]:
        operations: list[Operation] = []
        for match in matches:
            validate_handler_options(self.name, match.options)
            operations.append(CreateDataLink(pack=match.pack, handler=self.name, source=match.absolute_path))
        logger.debug("shell: %d matches -> %d operations", len(matches), len(operations))
        return operations

    def clear(self, ctx: ClearContext) -> list[ClearedItem]:
        return clear_deployed_links(ctx, self, self.deployed_kind or "shell_profile")

    def format_cleared_item(self, item: ClearedItem, dry_run: bool) -> str:
        verb = "Would stop sourcing" if dry_run else "Stopped sourcing"
        return f"{verb} {item.description.removeprefix(f'{item.type} entry for ')}"
