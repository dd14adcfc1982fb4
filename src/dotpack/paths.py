"""Deterministic filesystem layout for dotpack."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

from .errors import ConfigError

TOOL_NAME = "dotpack"
INIT_SCRIPT_NAME = f"{TOOL_NAME}-init.sh"
PACK_CONFIG_FILENAME = f".{TOOL_NAME}.toml"
IGNORE_FILENAME = f".{TOOL_NAME}ignore"
ROOT_CONFIG_FILENAME = f"{TOOL_NAME}.toml"

ENV_DOTFILES_ROOT = "DOTFILES_ROOT"
ENV_DATA_DIR = "DOTPACK_DATA_DIR"
ENV_HOMEBREW_UNINSTALL = "DOTPACK_HOMEBREW_UNINSTALL"
ENV_LOG_LEVEL = "DOTPACK_LOG_LEVEL"

DEPLOYED_KINDS = ("symlink", "path", "shell_profile", "shell_source")


def expand_path(raw: str | os.PathLike[str], *, base_dir: Path | None = None) -> Path:
    """Return an absolute ``Path`` after expanding env vars and ``~``."""

    expanded = Path(os.path.expandvars(str(raw))).expanduser()
    if not expanded.is_absolute():
        expanded = (base_dir or Path.cwd()) / expanded
    return Path(os.path.normpath(expanded))


def default_data_root(home: Path, environ: Mapping[str, str] | None = None) -> Path:
    """Resolve the XDG data directory for dotpack."""

    env = os.environ if environ is None else environ
    override = env.get(ENV_DATA_DIR)
    if override:
        return expand_path(override)
    xdg = env.get("XDG_DATA_HOME")
    if xdg:
        return expand_path(xdg) / TOOL_NAME
    return home / ".local" / "share" / TOOL_NAME


class Paths:
    """Computes every location dotpack reads or writes."""

    def __init__(
        self,
        dotfiles_root: str | os.PathLike[str],
        data_root: str | os.PathLike[str] | None = None,
        home: str | os.PathLike[str] | None = None,
    ) -> None:
        if not str(dotfiles_root).strip():
            raise ConfigError("Dotfiles root must not be empty")

        self.home = expand_path(home) if home is not None else expand_path(os.environ.get("HOME") or Path.home())
        self.dotfiles_root = expand_path(dotfiles_root)
        self.data_root = expand_path(data_root) if data_root is not None else default_data_root(self.home)

    def __repr__(self) -> str:
        return f"Paths(dotfiles_root={self.dotfiles_root!s}, data_root={self.data_root!s}, home={self.home!s})"

    def data_dir(self) -> Path:
        return self.data_root

    def packs_dir(self) -> Path:
        return self.data_root / "packs"

    def pack_data_dir(self, pack: str) -> Path:
        return self.packs_dir() / pack

    def pack_handler_dir(self, pack: str, handler: str) -> Path:
        """Return ``<data>/packs/<pack>/<handler-state-name>`` for ``handler``."""

        return self.pack_data_dir(pack) / handler_state_name(handler)

    def deployed_dir(self) -> Path:
        return self.data_root / "deployed"

    def handler_deployed_dir(self, kind: str) -> Path:
        if kind not in DEPLOYED_KINDS:
            raise ConfigError(f"Unknown deployed kind '{kind}'")
        return self.deployed_dir() / kind

    def shell_dir(self) -> Path:
        return self.data_root / "shell"

    def init_script_path(self) -> Path:
        return self.shell_dir() / INIT_SCRIPT_NAME

    def pack_path(self, pack: str) -> Path:
        return self.dotfiles_root / pack

    def pack_config_path(self, pack: str) -> Path:
        return self.pack_path(pack) / PACK_CONFIG_FILENAME

    def root_config_path(self) -> Path:
        return self.dotfiles_root / ROOT_CONFIG_FILENAME

    def map_pack_file_to_system(self, pack: str, relative_path: str | os.PathLike[str]) -> Path:
        """Return the default symlink target for a pack file.

        The pack groups files but is not part of the target path: ``vim/.vimrc``
        maps to ``<home>/.vimrc``.
        """

        relative = Path(relative_path)
        if relative.is_absolute() or ".." in relative.parts:
            raise ConfigError(f"Pack '{pack}' file '{relative}' must be relative to the pack")
        return self.home / relative


HANDLER_STATE_DIRS = {"symlink": "symlinks"}
HANDLER_DEPLOYED_KINDS = {"path": "path", "shell": "shell_profile"}


def handler_state_name(handler: str) -> str:
    """Return the state directory name a handler's data lives under."""

    return HANDLER_STATE_DIRS.get(handler, handler)


def handler_for_state_name(state_name: str) -> str:
    """Inverse of ``handler_state_name``."""

    for handler, name in HANDLER_STATE_DIRS.items():
        if name == state_name:
            return handler
    return state_name


def handler_deployed_kind(handler: str) -> str | None:
    """Return the deployed directory a handler's links are exposed under, if any."""

    return HANDLER_DEPLOYED_KINDS.get(handler)
