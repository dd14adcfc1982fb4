"""Per-pack, per-handler state owned by dotpack.

The DataStore is the inner stage of the two-stage linking protocol. Every
user-facing link resolves ``user path -> <data>/packs/<pack>/<state>/<name> ->
source``; the intermediate link is what makes reversal safe.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from .errors import ConflictError, ExecError, FilesystemError, StateError
from .filesystem import Filesystem, lexists, symlink_points_to
from .paths import Paths, handler_for_state_name

logger = logging.getLogger(__name__)

CommandRunner = Callable[[str, Path], int]
Clock = Callable[[], datetime]

SENTINEL_SEPARATOR = "|"


def run_shell_command(command: str, cwd: Path) -> int:
    """Run ``command`` through ``/bin/sh`` in ``cwd``, inheriting stdio."""

    completed = subprocess.run(["/bin/sh", "-c", command], cwd=cwd, check=False)
    return completed.returncode


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class DataLink:
    """An intermediate link found in a handler's state directory."""

    name: str
    path: Path
    target: Path


def format_sentinel(checksum: str, timestamp: datetime) -> str:
    return f"{checksum}{SENTINEL_SEPARATOR}{timestamp.isoformat(timespec='seconds')}"


def parse_sentinel(content: str) -> str:
    """Return the checksum recorded in a sentinel body."""

    checksum, separator, _ = content.strip().partition(SENTINEL_SEPARATOR)
    if not separator or not checksum:
        raise StateError(f"Malformed sentinel content '{content.strip()}'")
    return checksum


def _check_name(name: str, what: str) -> str:
    if not name or name in {".", ".."} or "/" in name:
        raise StateError(f"Invalid {what} name '{name}'")
    return name


class DataStore:
    """Owns ``<data>/packs/<pack>/<handler-state>/`` and the deployed directory."""

    def __init__(
        self,
        fs: Filesystem,
        paths: Paths,
        *,
        runner: CommandRunner = run_shell_command,
        clock: Clock = utc_now,
    ) -> None:
        self.fs = fs
        self.paths = paths
        self.runner = runner
        self.clock = clock

    # ------------------------------------------------------------------
    # Linking

    def data_link_path(self, pack: str, handler: str, source: Path) -> Path:
        """Return where the intermediate link for ``source`` lives."""

        name = _check_name(Path(source).name, "data link")
        return self.paths.pack_handler_dir(pack, handler) / name

    def create_data_link(self, pack: str, handler: str, source: Path) -> Path:
        """Place ``<state>/<basename(source)> -> source`` and return its path."""

        source = Path(source)
        link_dir = self.paths.pack_handler_dir(pack, handler)
        link_path = self.data_link_path(pack, handler, source)

        try:
            self.fs.mkdir_all(link_dir)
            if symlink_points_to(self.fs, link_path, source):
                logger.debug("Data link %s already points to %s", link_path, source)
                return link_path
            if lexists(self.fs, link_path):
                logger.debug("Replacing stale data link %s", link_path)
                self.fs.remove_all(link_path)
            self.fs.symlink(source, link_path)
        except OSError as exc:
            raise FilesystemError(f"Failed to create data link '{link_path}' for '{source}': {exc}") from exc

        logger.debug("Created data link %s -> %s", link_path, source)
        return link_path

    def create_user_link(self, datastore_path: Path, user_path: Path, *, force: bool = False) -> bool:
        """Link ``user_path`` to ``datastore_path``.

        Returns ``True`` if a change was made. An existing entry that is not
        already the expected symlink raises ``ConflictError`` unless ``force``
        is set, in which case it is replaced.
        """

        datastore_path = Path(datastore_path)
        user_path = Path(user_path)

        try:
            self.fs.mkdir_all(user_path.parent)
            if lexists(self.fs, user_path):
                if symlink_points_to(self.fs, user_path, datastore_path):
                    return False
                if not force:
                    raise ConflictError(
                        f"'{user_path}' already exists and is not managed by dotpack; use --force to replace it"
                    )
                logger.info("Replacing existing entry at %s", user_path)
                self.fs.remove_all(user_path)
            self.fs.symlink(datastore_path, user_path)
        except OSError as exc:
            raise FilesystemError(f"Failed to link '{user_path}' to '{datastore_path}': {exc}") from exc

        logger.debug("Created user link %s -> %s", user_path, datastore_path)
        return True

    def deployed_link_path(self, kind: str, pack: str, datastore_path: Path) -> Path:
        name = _check_name(f"{pack}-{Path(datastore_path).name}", "deployed link")
        return self.paths.handler_deployed_dir(kind) / name

    def link_deployed(self, kind: str, pack: str, datastore_path: Path) -> Path:
        """Expose an intermediate link to the shell runtime under ``<deployed>/<kind>``."""

        datastore_path = Path(datastore_path)
        deployed_path = self.deployed_link_path(kind, pack, datastore_path)
        try:
            self.fs.mkdir_all(deployed_path.parent)
            if symlink_points_to(self.fs, deployed_path, datastore_path):
                return deployed_path
            if lexists(self.fs, deployed_path):
                self._check_deployed_owner(deployed_path, datastore_path)
                self.fs.remove_all(deployed_path)
            self.fs.symlink(datastore_path, deployed_path)
        except OSError as exc:
            raise FilesystemError(f"Failed to register '{datastore_path}' under '{kind}': {exc}") from exc
        return deployed_path

    def _check_deployed_owner(self, deployed_path: Path, datastore_path: Path) -> None:
        """Refuse to take over a live deployed link registered by another pack or handler."""

        try:
            current = self.fs.readlink(deployed_path)
        except OSError:
            return
        if current.parent != datastore_path.parent and lexists(self.fs, current):
            raise ConflictError(
                f"'{deployed_path}' is already registered for '{current}'; '{datastore_path}' would replace it"
            )

    def list_deployed_links(self, kind: str, pack: str, handler: str) -> list[Path]:
        """Return deployed links of ``kind`` that route through the pack's state."""

        directory = self.paths.handler_deployed_dir(kind)
        state_dir = self.paths.pack_handler_dir(pack, handler)
        found: list[Path] = []
        for name in self._read_dir(directory):
            entry = directory / name
            try:
                target = self.fs.readlink(entry)
            except OSError:
                continue
            if target.parent == state_dir:
                found.append(entry)
        return found

    def list_data_links(self, pack: str, handler: str) -> list[DataLink]:
        """Return the intermediate links in a handler's state directory."""

        state_dir = self.paths.pack_handler_dir(pack, handler)
        links: list[DataLink] = []
        for name in self._read_dir(state_dir):
            path = state_dir / name
            try:
                target = self.fs.readlink(path)
            except OSError:
                logger.warning("Ignoring non-link entry %s in state directory", path)
                continue
            links.append(DataLink(name=name, path=path, target=target))
        return links

    # ------------------------------------------------------------------
    # Sentinels

    def sentinel_path(self, pack: str, handler: str, sentinel: str) -> Path:
        return self.paths.pack_handler_dir(pack, handler) / _check_name(sentinel, "sentinel")

    def has_sentinel(self, pack: str, handler: str, sentinel: str) -> bool:
        return lexists(self.fs, self.sentinel_path(pack, handler, sentinel))

    def read_sentinel(self, pack: str, handler: str, sentinel: str) -> str:
        """Return the checksum stored in a sentinel."""

        path = self.sentinel_path(pack, handler, sentinel)
        try:
            content = self.fs.read_file(path).decode("utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise StateError(f"Cannot read sentinel '{path}': {exc}") from exc
        return parse_sentinel(content)

    def run_and_record(
        self,
        pack: str,
        handler: str,
        command: str,
        sentinel: str,
        checksum: str,
        *,
        cwd: Path,
    ) -> bool:
        """Run ``command`` unless ``sentinel`` already records ``checksum``.

        Returns ``True`` if the command ran, ``False`` if it was skipped.
        """

        if self.has_sentinel(pack, handler, sentinel):
            try:
                recorded = self.read_sentinel(pack, handler, sentinel)
            except StateError as exc:
                logger.warning("%s; running '%s' again", exc, command)
            else:
                if recorded == checksum:
                    logger.debug("Sentinel %s/%s/%s is current, skipping", pack, handler, sentinel)
                    return False
                logger.info("Checksum changed for %s/%s/%s, running again", pack, handler, sentinel)

        logger.info("Running '%s' in %s", command, cwd)
        try:
            returncode = self.runner(command, cwd)
        except OSError as exc:
            raise ExecError(f"Failed to start '{command}': {exc}") from exc
        if returncode != 0:
            raise ExecError(f"Command '{command}' exited with status {returncode}", returncode=returncode)

        path = self.sentinel_path(pack, handler, sentinel)
        try:
            self.fs.mkdir_all(path.parent)
            self.fs.write_file(path, format_sentinel(checksum, self.clock()).encode("utf-8"))
        except OSError as exc:
            raise FilesystemError(f"Failed to write sentinel '{path}': {exc}") from exc
        return True

    def list_handler_sentinels(self, pack: str, handler: str) -> list[str]:
        state_dir = self.paths.pack_handler_dir(pack, handler)
        sentinels: list[str] = []
        for name in self._read_dir(state_dir):
            try:
                info = self.fs.lstat(state_dir / name)
            except OSError:
                continue
            if info.is_file:
                sentinels.append(name)
        return sentinels

    # ------------------------------------------------------------------
    # Whole-handler state

    def has_handler_state(self, pack: str, handler: str) -> bool:
        return bool(self._read_dir(self.paths.pack_handler_dir(pack, handler)))

    def list_pack_handlers(self, pack: str) -> list[str]:
        """Return the handlers that have a state directory for ``pack``."""

        pack_dir = self.paths.pack_data_dir(pack)
        handlers: list[str] = []
        for name in self._read_dir(pack_dir):
            try:
                info = self.fs.lstat(pack_dir / name)
            except OSError:
                continue
            if info.is_dir:
                handlers.append(handler_for_state_name(name))
        return handlers

    def remove_state(self, pack: str, handler: str) -> None:
        """Remove the handler's state directory; a missing directory is fine."""

        state_dir = self.paths.pack_handler_dir(pack, handler)
        try:
            self.fs.remove_all(state_dir)
        except OSError as exc:
            raise FilesystemError(f"Failed to remove state directory '{state_dir}': {exc}") from exc
        logger.debug("Removed state directory %s", state_dir)

    def _read_dir(self, directory: Path) -> list[str]:
        try:
            return self.fs.read_dir(directory)
        except (FileNotFoundError, NotADirectoryError):
            return []
        except OSError as exc:
            raise FilesystemError(f"Failed to list '{directory}': {exc}") from exc
