"""High level orchestration for dotpack commands."""

from __future__ import annotations

import io
import logging
import os
from pathlib import Path
from typing import Iterable, Mapping, Sequence

import tomli_w

from .clear import Confirmer, clear_pack, decline_all
from .config import RootConfig, Settings, load_root_config
from .datastore import Clock, CommandRunner, DataStore, run_shell_command, utc_now
from .errors import ConfigError, ConflictError, DotpackError, FilesystemError, NotFoundError
from .executor import OperationExecutor
from .filesystem import Filesystem, OSFilesystem, lexists
from .handlers import Handler, SymlinkHandler, build_handlers
from .models import (
    HandlerCategory,
    OffResult,
    OnResult,
    OperationResult,
    Pack,
    PackRunResult,
    RuleMatch,
    Selector,
    StatusReport,
)
from .packs import discover_packs, select_packs
from .paths import IGNORE_FILENAME, PACK_CONFIG_FILENAME
from .pipeline import is_provisioned, run_pack
from .rules import match_pack, match_packs
from .shell_init import install_shell_init, shell_snippet
from .status import collect_status

logger = logging.getLogger(__name__)

PACK_CONFIG_HEADER = """\
# dotpack pack configuration
#
# Files matching these patterns are never deployed:
#   ignore = ["*.local", "secrets/"]
#
# Pack rules are tried before the global rules:
#   [[rules]]
#   pattern = "my-setup.sh"
#   handler = "install"
#
# Link files somewhere other than the home directory:
#   [handlers.symlink]
#   target = "$XDG_CONFIG_HOME"

"""


class DotpackManager:
    """Coordinates discovery, rule matching and the deployment engine."""

    def __init__(
        self,
        settings: Settings,
        *,
        fs: Filesystem | None = None,
        runner: CommandRunner | None = None,
        confirmer: Confirmer = decline_all,
        environ: Mapping[str, str] | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.settings = settings
        self.paths = settings.paths()
        self.fs = fs or OSFilesystem()
        self.environ = dict(os.environ if environ is None else environ)
        self.confirmer = confirmer
        self.datastore = DataStore(self.fs, self.paths, runner=runner or run_shell_command, clock=clock)
        self.handlers: dict[str, Handler] = build_handlers(self.paths, self.fs)
        self._root_config: RootConfig | None = None

    @property
    def root_config(self) -> RootConfig:
        if self._root_config is None:
            self._root_config = load_root_config(self.paths, self.fs)
        return self._root_config

    def packs(self, names: Iterable[str] | None = None) -> list[Pack]:
        return select_packs(discover_packs(self.paths, self.fs, self.root_config), names)

    def on(
        self,
        names: Iterable[str] | None = None,
        *,
        dry_run: bool = False,
        force: bool = False,
        no_provision: bool = False,
        provision_rerun: bool = False,
    ) -> OnResult:
        """Deploy packs: the link pass, then (unless disabled) the provisioning pass."""

        packs = self.packs(names)
        matches = match_packs(packs, self.fs, self.root_config)
        self._check_symlink_conflicts(matches)

        installed = install_shell_init(self.paths, self.fs, dry_run=dry_run)

        runs: list[PackRunResult] = []
        for pack in packs:
            pack_matches = matches[pack.name]
            linked = run_pack(
                pack,
                pack_matches,
                self.handlers,
                Selector.CONFIGURATION_ONLY,
                self.datastore,
                self.fs,
                dry_run=dry_run,
                force=force,
            )
            handler_results = list(linked.handlers)

            if not no_provision:
                if provision_rerun:
                    self._forget_provisioning(pack, dry_run=dry_run)
                elif is_provisioned(pack.name, self.handlers, self.datastore):
                    logger.debug("Pack '%s' was provisioned before; sentinels decide what runs again", pack.name)
                provisioned = run_pack(
                    pack,
                    pack_matches,
                    self.handlers,
                    Selector.CODE_EXECUTION_ONLY,
                    self.datastore,
                    self.fs,
                    dry_run=dry_run,
                    force=force,
                )
                handler_results.extend(provisioned.handlers)

            runs.append(PackRunResult(pack=pack.name, handlers=tuple(handler_results)))

        return OnResult(packs=tuple(runs), shell_init_installed=installed, dry_run=dry_run)

    def off(self, names: Iterable[str] | None = None, *, dry_run: bool = False) -> OffResult:
        """Reverse the deployment of the selected packs."""

        results = [
            clear_pack(
                pack,
                self.handlers,
                self.datastore,
                self.fs,
                self.paths,
                dry_run=dry_run,
                confirmer=self.confirmer,
                environ=self.environ,
                matches=self._matches_for_off(pack),
            )
            for pack in self._packs_for_off(names)
        ]
        return OffResult(packs=tuple(results), dry_run=dry_run)

    def status(self, names: Iterable[str] | None = None) -> StatusReport:
        packs = self.packs(names)
        matches = match_packs(packs, self.fs, self.root_config)
        return collect_status(packs, matches, self.handlers, self.datastore, self.fs)

    def init_pack(self, name: str) -> Path:
        """Create a new pack directory with a commented ``.dotpack.toml``."""

        pack_path = self.paths.pack_path(self._check_pack_name(name))
        if lexists(self.fs, pack_path):
            raise ConflictError(f"Pack '{name}' already exists at '{pack_path}'")

        buffer = io.StringIO()
        buffer.write(PACK_CONFIG_HEADER)
        buffer.write(tomli_w.dumps({"ignore": []}))

        config_path = pack_path / PACK_CONFIG_FILENAME
        try:
            self.fs.mkdir_all(pack_path)
            self.fs.write_file(config_path, buffer.getvalue().encode("utf-8"))
        except OSError as exc:
            raise FilesystemError(f"Failed to create pack '{name}': {exc}") from exc
        logger.info("Created pack '%s' at %s", name, pack_path)
        return pack_path

    def add_ignore(self, name: str) -> bool:
        """Mark a pack directory as ignored; returns ``False`` if it already was."""

        pack_path = self._existing_pack_dir(name)
        marker = pack_path / IGNORE_FILENAME
        if lexists(self.fs, marker):
            return False
        try:
            self.fs.write_file(marker, b"")
        except OSError as exc:
            raise FilesystemError(f"Failed to create '{marker}': {exc}") from exc
        return True

    def adopt(self, name: str, files: Sequence[str | os.PathLike[str]], *, force: bool = False) -> list[OperationResult]:
        """Move existing files into a pack and link them back into place."""

        pack_path = self._existing_pack_dir(name)
        pack = next((pack for pack in self.packs() if pack.name == name), Pack(name=name, path=pack_path))
        handler = self._symlink_handler()
        options = pack.config.handler_options(handler.name) if pack.config else {}
        base = handler.target_for(pack.name, Path(), options)

        matches: list[RuleMatch] = []
        for raw in files:
            source = Path(os.path.normpath(Path(raw).expanduser().absolute()))
            try:
                relative = source.relative_to(base)
            except ValueError as exc:
                raise ConfigError(f"Cannot adopt '{source}': it is not inside '{base}'") from exc
            if not relative.parts:
                raise ConfigError(f"Cannot adopt '{source}' itself")
            if not lexists(self.fs, source):
                raise NotFoundError(f"Cannot adopt '{source}': it does not exist")
            try:
                current = self.fs.readlink(source)
            except OSError:
                current = None
            if current is not None and self.paths.data_dir() in current.parents:
                raise ConflictError(f"'{source}' is already managed by dotpack")

            destination = pack.path / relative
            if lexists(self.fs, destination):
                if not force:
                    raise ConflictError(f"'{destination}' already exists in pack '{name}'; use --force to replace it")
                self.fs.remove_all(destination)

            self._move(source, destination)
            logger.info("Moved %s into pack '%s'", source, name)
            matches.append(
                RuleMatch(pack=name, relative_path=relative, absolute_path=destination, handler=handler.name, options=options)
            )

        execution = OperationExecutor(self.datastore, self.fs).execute(handler.to_operations(matches))
        return list(execution.results)

    def shell_snippet(self) -> str:
        return shell_snippet(self.paths)

    # ------------------------------------------------------------------
    # Internal helpers

    def _symlink_handler(self) -> SymlinkHandler:
        handler = self.handlers["symlink"]
        if not isinstance(handler, SymlinkHandler):
            raise ConfigError(f"Handler 'symlink' is {type(handler).__name__}, not a symlink handler")
        return handler

    def _check_symlink_conflicts(self, matches: Mapping[str, Sequence[RuleMatch]]) -> None:
        handler = self.handlers["symlink"]
        symlink_matches = [match for pack_matches in matches.values() for match in pack_matches if match.handler == handler.name]
        try:
            handler.to_operations(symlink_matches)
        except ConflictError:
            raise
        except DotpackError as exc:
            logger.debug("Deferring symlink error to the pipeline: %s", exc)

    def _forget_provisioning(self, pack: Pack, *, dry_run: bool) -> None:
        for handler_name, handler in self.handlers.items():
            if handler.category is not HandlerCategory.CODE_EXECUTION:
                continue
            if dry_run:
                logger.info("Would forget %s runs for pack '%s'", handler_name, pack.name)
                continue
            self.datastore.remove_state(pack.name, handler_name)

    def _packs_for_off(self, names: Iterable[str] | None) -> list[Pack]:
        known = {pack.name: pack for pack in discover_packs(self.paths, self.fs, self.root_config)}
        try:
            deployed = self.fs.read_dir(self.paths.packs_dir())
        except (FileNotFoundError, NotADirectoryError):
            deployed = []
        for pack_name in deployed:
            known.setdefault(pack_name, Pack(name=pack_name, path=self.paths.pack_path(pack_name)))
        return select_packs(sorted(known.values(), key=lambda pack: pack.name), names)

    def _matches_for_off(self, pack: Pack) -> list[RuleMatch]:
        """Return the pack's current rule matches; a pack whose directory is gone has none."""

        try:
            return match_pack(pack, self.fs, self.root_config)
        except NotFoundError:
            logger.debug("Pack '%s' no longer exists; clearing with its default options", pack.name)
            return []

    def _check_pack_name(self, name: str) -> str:
        cleaned = name.strip().rstrip("/")
        if not cleaned or cleaned.startswith(".") or "/" in cleaned:
            raise ConfigError(f"Invalid pack name '{name}'")
        return cleaned

    def _existing_pack_dir(self, name: str) -> Path:
        pack_path = self.paths.pack_path(self._check_pack_name(name))
        try:
            is_dir = self.fs.stat(pack_path).is_dir
        except OSError:
            is_dir = False
        if not is_dir:
            raise NotFoundError(f"Pack '{name}' not found")
        return pack_path

    def _move(self, source: Path, destination: Path) -> None:
        try:
            self.fs.mkdir_all(destination.parent)
            self._copy_tree(source, destination)
            self.fs.remove_all(source)
        except OSError as exc:
            raise FilesystemError(f"Failed to move '{source}' to '{destination}': {exc}") from exc

    def _copy_tree(self, source: Path, destination: Path) -> None:
        info = self.fs.lstat(source)
        if info.is_symlink:
            self.fs.symlink(self.fs.readlink(source), destination)
        elif info.is_dir:
            self.fs.mkdir_all(destination, info.mode)
            for child in self.fs.read_dir(source):
                self._copy_tree(source / child, destination / child)
        else:
            self.fs.write_file(destination, self.fs.read_file(source), info.mode)
