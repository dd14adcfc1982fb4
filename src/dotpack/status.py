"""Per-file deployment status."""

from __future__ import annotations

import logging
from typing import Iterable, Mapping, Sequence

from .datastore import DataStore
from .errors import DotpackError
from .filesystem import Filesystem, exists, lexists, symlink_points_to
from .handlers import Handler, HomebrewHandler, InstallHandler, SymlinkHandler
from .handlers.base import source_checksum
from .models import Pack, RuleMatch, StatusEntry, StatusReport, StatusState

logger = logging.getLogger(__name__)


def _entry(match: RuleMatch, state: StatusState, details: str | None = None) -> StatusEntry:
    return StatusEntry(
        pack=match.pack,
        relative_path=match.relative_path,
        handler=match.handler,
        state=state,
        details=details,
    )


class StatusChecker:
    """Compares what the rules say should be deployed with what is on disk."""

    def __init__(self, handlers: Mapping[str, Handler], datastore: DataStore, fs: Filesystem) -> None:
        self.handlers = handlers
        self.datastore = datastore
        self.fs = fs

    def check(self, match: RuleMatch) -> StatusEntry:
        handler = self.handlers.get(match.handler)
        if handler is None:
            return _entry(match, StatusState.ERROR, f"Unknown handler '{match.handler}'")
        try:
            if isinstance(handler, SymlinkHandler):
                return self._check_symlink(handler, match)
            if isinstance(handler, InstallHandler):
                return self._check_sentinel(match, handler.sentinel_name(match), source_checksum(self.fs, match.absolute_path))
            if isinstance(handler, HomebrewHandler):
                return self._check_brewfile(handler, match)
            return self._check_data_link(match)
        except DotpackError as exc:
            return _entry(match, StatusState.ERROR, str(exc))

    def _check_data_link(self, match: RuleMatch) -> StatusEntry:
        link = self.datastore.data_link_path(match.pack, match.handler, match.absolute_path)
        if not lexists(self.fs, link):
            return _entry(match, StatusState.PENDING, "Not deployed")
        if not symlink_points_to(self.fs, link, match.absolute_path):
            return _entry(match, StatusState.PENDING, f"{link} points elsewhere")
        if not exists(self.fs, link):
            return _entry(match, StatusState.BROKEN, f"{link} target is missing")

        kind = self.handlers[match.handler].deployed_kind
        if kind is not None:
            deployed = self.datastore.deployed_link_path(kind, match.pack, link)
            if not symlink_points_to(self.fs, deployed, link):
                return _entry(match, StatusState.PENDING, f"Not registered under {deployed.parent}")
        return _entry(match, StatusState.DEPLOYED, str(link))

    def _check_symlink(self, handler: SymlinkHandler, match: RuleMatch) -> StatusEntry:
        target = handler.target_for(match.pack, match.relative_path, match.options)
        link = self.datastore.data_link_path(match.pack, match.handler, match.absolute_path)

        if symlink_points_to(self.fs, target, link):
            if not symlink_points_to(self.fs, link, match.absolute_path):
                return _entry(match, StatusState.BROKEN, f"{target} → {link}, which does not point to the source")
            if not exists(self.fs, target):
                return _entry(match, StatusState.BROKEN, f"{target} does not resolve")
            return _entry(match, StatusState.DEPLOYED, f"{target} → {link}")

        if lexists(self.fs, target):
            try:
                current = f"links to {self.fs.readlink(target)}"
            except OSError:
                current = "is not a symlink"
            return _entry(match, StatusState.CONFLICT, f"{target} {current}")
        return _entry(match, StatusState.PENDING, f"{target} does not exist")

    def _check_sentinel(self, match: RuleMatch, sentinel: str, checksum: str) -> StatusEntry:
        if not self.datastore.has_sentinel(match.pack, match.handler, sentinel):
            return _entry(match, StatusState.PENDING, "Never run")
        recorded = self.datastore.read_sentinel(match.pack, match.handler, sentinel)
        if recorded != checksum:
            return _entry(match, StatusState.OUTDATED, "Changed since last run")
        return _entry(match, StatusState.DEPLOYED, f"Ran for checksum {checksum[:12]}")

    def _check_brewfile(self, handler: HomebrewHandler, match: RuleMatch) -> StatusEntry:
        checksum = source_checksum(self.fs, match.absolute_path)
        sentinel = handler.sentinel_name(match.pack, match.absolute_path, checksum)
        if self.datastore.has_sentinel(match.pack, match.handler, sentinel):
            return self._check_sentinel(match, sentinel, checksum)

        recorded = self.datastore.list_handler_sentinels(match.pack, match.handler)
        if any(handler.brewfile_for_sentinel(match.pack, name) == match.absolute_path.name for name in recorded):
            return _entry(match, StatusState.OUTDATED, "Brewfile changed since last run")
        return _entry(match, StatusState.PENDING, "Never run")


def collect_status(
    packs: Sequence[Pack],
    matches: Mapping[str, Iterable[RuleMatch]],
    handlers: Mapping[str, Handler],
    datastore: DataStore,
    fs: Filesystem,
) -> StatusReport:
    """Return one status entry per rule match, packs in the order given."""

    checker = StatusChecker(handlers, datastore, fs)
    entries: list[StatusEntry] = []
    for pack in packs:
        for match in matches.get(pack.name, ()):
            entries.append(checker.check(match))
    logger.debug("Collected %d status entries", len(entries))
    return StatusReport(entries=tuple(entries))
