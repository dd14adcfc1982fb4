"""Common handler surface and helpers."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar, Iterable, Mapping, Sequence

from ..datastore import DataStore
from ..errors import NotFoundError, StateError
from ..filesystem import Filesystem, hash_file, lexists
from ..models import ClearedItem, ConfirmationRequest, HandlerCategory, Operation, Pack, RuleMatch
from ..paths import Paths, handler_deployed_kind, handler_state_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClearContext:
    """Everything a handler needs to reverse its deployment for one pack."""

    pack: Pack
    datastore: DataStore
    fs: Filesystem
    paths: Paths
    dry_run: bool = False
    environ: Mapping[str, str] = field(default_factory=lambda: dict(os.environ))
    matches: tuple[RuleMatch, ...] = ()


class Handler:
    """A pure transformer from rule matches to operations.

    Subclasses set ``name`` and ``category`` and implement ``to_operations``.
    The clear hooks default to "nothing beyond the state directory".
    """

    name: ClassVar[str]
    category: ClassVar[HandlerCategory]

    @property
    def state_dir_name(self) -> str:
        return handler_state_name(self.name)

    @property
    def deployed_kind(self) -> str | None:
        return handler_deployed_kind(self.name)

    def to_operations(self, matches: Sequence[RuleMatch]) -> list[Operation]:
        raise NotImplementedError

    def get_clear_confirmation(self, ctx: ClearContext) -> ConfirmationRequest | None:
        return None

    def clear(self, ctx: ClearContext) -> list[ClearedItem]:
        """Undo effects outside the state directory and report what was (or would be) removed."""

        return []

    def format_cleared_item(self, item: ClearedItem, dry_run: bool) -> str:
        verb = "Would remove" if dry_run else "Removed"
        return f"{verb} {item.description}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


def source_checksum(fs: Filesystem, path: Path) -> str:
    """Return the SHA-256 of ``path``, mapping failures onto dotpack errors."""

    try:
        return hash_file(fs, path)
    except FileNotFoundError as exc:
        raise NotFoundError(f"Source file '{path}' does not exist") from exc
    except OSError as exc:
        raise StateError(f"Cannot checksum '{path}': {exc}") from exc


def clear_deployed_links(ctx: ClearContext, handler: Handler, kind: str) -> list[ClearedItem]:
    """Remove the pack's aggregation links under ``<deployed>/<kind>``."""

    items: list[ClearedItem] = []
    sources = {link.path: link.target for link in ctx.datastore.list_data_links(ctx.pack.name, handler.name)}
    for deployed in ctx.datastore.list_deployed_links(kind, ctx.pack.name, handler.name):
        intermediate = ctx.fs.readlink(deployed)
        source = sources.get(intermediate, intermediate)
        items.append(ClearedItem(type=kind, path=deployed, description=f"{kind} entry for {source}"))
        if not ctx.dry_run:
            ctx.fs.remove(deployed)
            logger.debug("Removed deployed link %s", deployed)
    return items


def sentinel_items(ctx: ClearContext, handler: Handler, names: Iterable[str] | None = None) -> list[ClearedItem]:
    """Describe the sentinels a handler has recorded for the pack."""

    if names is None:
        names = ctx.datastore.list_handler_sentinels(ctx.pack.name, handler.name)
    items: list[ClearedItem] = []
    for name in names:
        path = ctx.datastore.sentinel_path(ctx.pack.name, handler.name, name)
        if lexists(ctx.fs, path):
            items.append(ClearedItem(type="sentinel", path=path, description=f"run record {name}"))
    return items
