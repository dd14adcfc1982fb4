"""Links pack files into the home directory through the datastore."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Sequence

from ..config import validate_handler_options
from ..errors import ConfigError, ConflictError
from ..filesystem import lexists
from ..models import ClearedItem, CreateDataLink, CreateUserLink, HandlerCategory, Operation, RuleMatch
from ..paths import Paths, expand_path
from .base import ClearContext, Handler

logger = logging.getLogger(__name__)


class SymlinkHandler(Handler):
    """Deploys files as ``user path -> intermediate link -> source``."""

    name = "symlink"
    category = HandlerCategory.CONFIGURATION

    def __init__(self, paths: Paths) -> None:
        self.paths = paths

    def target_for(self, pack: str, relative_path: Path, options: Mapping[str, Any] | None = None) -> Path:
        """Return the user-visible path a pack file is linked at.

        Defaults to ``<home>/<relative path>``; the ``target`` option replaces
        the home directory with another base directory (env vars expanded).
        """

        options = options or {}
        target = options.get("target")
        if target is None:
            return self.paths.map_pack_file_to_system(pack, relative_path)
        if not isinstance(target, str):
            raise ConfigError(f"Symlink option 'target' must be a string, got {type(target).__name__}")
        return expand_path(target, base_dir=self.paths.home) / relative_path

    def to_operations(self, matches: Sequence[RuleMatch]) -> list[Operation]:
        operations: list[Operation] = []
        targets: dict[Path, Path] = {}
        link_names: dict[tuple[str, str], Path] = {}

        for match in matches:
            validate_handler_options(self.name, match.options)
            target = self.target_for(match.pack, match.relative_path, match.options)

            existing = targets.get(target)
            if existing is not None and existing != match.absolute_path:
                raise ConflictError(
                    f"Symlink conflict: both '{existing}' and '{match.absolute_path}' want to link to '{target}'"
                )
            targets[target] = match.absolute_path

            key = (match.pack, match.absolute_path.name)
            clashing = link_names.get(key)
            if clashing is not None and clashing != match.absolute_path:
                raise ConflictError(
                    f"Symlink conflict: '{clashing}' and '{match.absolute_path}' in pack '{match.pack}' share "
                    f"the name '{match.absolute_path.name}'"
                )
            link_names[key] = match.absolute_path

            if existing is not None:
                continue
            operations.append(CreateDataLink(pack=match.pack, handler=self.name, source=match.absolute_path))
            operations.append(
                CreateUserLink(pack=match.pack, handler=self.name, source=match.absolute_path, target=target)
            )

        logger.debug("symlink: %d matches -> %d operations", len(matches), len(operations))
        return operations

    def clear(self, ctx: ClearContext) -> list[ClearedItem]:
        pack_options = ctx.pack.config.handler_options(self.name) if ctx.pack.config else {}
        match_options = {match.absolute_path: match.options for match in ctx.matches if match.handler == self.name}
        items: list[ClearedItem] = []

        for link in ctx.datastore.list_data_links(ctx.pack.name, self.name):
            try:
                relative = link.target.relative_to(ctx.pack.path)
            except ValueError:
                logger.warning("Data link %s points outside pack '%s'; leaving user link alone", link.path, ctx.pack.name)
                continue

            user_path = self.target_for(ctx.pack.name, relative, match_options.get(link.target, pack_options))
            try:
                current = ctx.fs.readlink(user_path)
            except OSError:
                if lexists(ctx.fs, user_path):
                    logger.warning("Leaving %s in place: it is not a link managed by dotpack", user_path)
                continue
            if current != link.path:
                logger.warning("Leaving %s in place: it points to %s, not %s", user_path, current, link.path)
                continue

            items.append(ClearedItem(type="symlink", path=user_path, description=f"symlink {user_path} -> {link.target}"))
            if not ctx.dry_run:
                ctx.fs.remove(user_path)
                logger.debug("Removed user link %s", user_path)

        return items
