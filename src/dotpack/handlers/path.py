"""Adds pack directories to ``PATH`` through the shell-init script."""

from __future__ import annotations

import logging
from typing import Sequence

from ..config import validate_handler_options
from ..models import ClearedItem, CreateDataLink, HandlerCategory, Operation, RuleMatch
from .base import ClearContext, Handler, clear_deployed_links

logger = logging.getLogger(__name__)


class PathHandler(Handler):
    name = "path"
    category = HandlerCategory.CONFIGURATION

    def to_operations(self, matches: Sequence[RuleMatch]) -> list[Operation]:
        operations: list[Operation] = []
        seen: set[tuple[str, str]] = set()
        for match in matches:
            validate_handler_options(self.name, match.options)
            key = (match.pack, match.relative_path.as_posix())
            if key in seen:
                logger.debug("Skipping duplicate directory %s/%s", match.pack, match.relative_path)
                continue
            seen.add(key)
            operations.append(CreateDataLink(pack=match.pack, handler=self.name, source=match.absolute_path))
        logger.debug("path: %d matches -> %d operations", len(matches), len(operations))
        return operations

    def clear(self, ctx: ClearContext) -> list[ClearedItem]:
        return clear_deployed_links(ctx, self, self.deployed_kind or "path")

    def format_cleared_item(self, item: ClearedItem, dry_run: bool) -> str:
        verb = "Would remove from PATH:" if dry_run else "Removed from PATH:"
        return f"{verb} {item.description.removeprefix(f'{item.type} entry for ')}"
