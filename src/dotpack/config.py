"""TOML configuration loading for dotpack."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Mapping

from pydantic import BaseModel, ConfigDict, Field

from .errors import ConfigError
from .filesystem import Filesystem, lexists
from .paths import ENV_DOTFILES_ROOT, PACK_CONFIG_FILENAME, Paths, default_data_root, expand_path

__all__ = [
    "ConfigError",
    "HANDLER_OPTIONS",
    "PackConfig",
    "RootConfig",
    "Rule",
    "Settings",
    "load_pack_config",
    "load_root_config",
    "validate_handler_options",
]

HANDLER_OPTIONS: Dict[str, frozenset[str]] = {
    "symlink": frozenset({"target"}),
    "shell": frozenset({"placement"}),
    "path": frozenset(),
    "install": frozenset(),
    "homebrew": frozenset(),
}


def validate_handler_options(handler: str, options: Mapping[str, Any]) -> None:
    """Reject unknown handler names, unknown option keys and non-string values."""

    if handler not in HANDLER_OPTIONS:
        raise ConfigError(f"Unknown handler '{handler}'")
    allowed = HANDLER_OPTIONS[handler]
    for key, value in options.items():
        if key not in allowed:
            raise ConfigError(f"Unknown option '{key}' for handler '{handler}'")
        if not isinstance(value, str):
            raise ConfigError(f"Option '{key}' for handler '{handler}' must be a string, got {type(value).__name__}")


class Settings(BaseModel):
    """Where dotfiles live, where state goes, and whose home is targeted."""

    model_config = ConfigDict(frozen=True)

    dotfiles_root: Path
    data_root: Path
    home: Path

    @classmethod
    def resolve(
        cls,
        *,
        dotfiles_root: str | os.PathLike[str] | None = None,
        data_root: str | os.PathLike[str] | None = None,
        home: str | os.PathLike[str] | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> "Settings":
        env = os.environ if environ is None else environ

        home_path = expand_path(home if home is not None else (env.get("HOME") or Path.home()))
        root_raw = dotfiles_root if dotfiles_root is not None else env.get(ENV_DOTFILES_ROOT)
        root_path = expand_path(root_raw) if root_raw else Path.cwd()
        data_path = expand_path(data_root) if data_root is not None else default_data_root(home_path, env)
        return cls(dotfiles_root=root_path, data_root=data_path, home=home_path)

    def paths(self) -> Paths:
        return Paths(self.dotfiles_root, self.data_root, self.home)


class Rule(BaseModel):
    """Maps a file pattern inside a pack to the handler that owns it."""

    model_config = ConfigDict(frozen=True)

    pattern: str
    handler: str = ""
    options: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_exclusion(self) -> bool:
        return self.pattern.startswith("!")

    @classmethod
    def from_raw(cls, raw: Any, *, origin: str) -> "Rule":
        if not isinstance(raw, Mapping):
            raise ConfigError(f"{origin}: each rule must be a table with 'pattern' and 'handler'")
        pattern = raw.get("pattern")
        if not isinstance(pattern, str) or not pattern:
            raise ConfigError(f"{origin}: rule has an empty pattern")
        handler = raw.get("handler", "")
        options = raw.get("options") or {}
        if not isinstance(options, Mapping):
            raise ConfigError(f"{origin}: options for rule '{pattern}' must be a table")
        if not pattern.startswith("!"):
            if not handler:
                raise ConfigError(f"{origin}: rule '{pattern}' has an empty handler")
            validate_handler_options(handler, options)
        return cls(pattern=pattern, handler=handler, options=dict(options))


class RootConfig(BaseModel):
    """Options from ``<dotfiles-root>/dotpack.toml``."""

    model_config = ConfigDict(frozen=True)

    rules: tuple[Rule, ...] | None = None
    pack_ignore: tuple[str, ...] = (".git", ".svn", ".hg", "node_modules")


class PackConfig(BaseModel):
    """Options from a pack's ``.dotpack.toml``."""

    model_config = ConfigDict(frozen=True)

    ignore: tuple[str, ...] = ()
    rules: tuple[Rule, ...] = ()
    handlers: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    def handler_options(self, handler: str) -> Dict[str, Any]:
        return dict(self.handlers.get(handler, {}))


def _read_toml(fs: Filesystem, path: Path) -> dict[str, Any]:
    try:
        text = fs.read_file(path).decode("utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Cannot read configuration file '{path}': {exc}") from exc
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in '{path}': {exc}") from exc


def _string_list(raw: Any, *, key: str, origin: Path) -> tuple[str, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list) or not all(isinstance(item, str) for item in raw):
        raise ConfigError(f"{origin}: '{key}' must be a list of strings")
    return tuple(raw)


def load_root_config(paths: Paths, fs: Filesystem) -> RootConfig:
    """Load ``dotpack.toml`` from the dotfiles root, or return defaults."""

    config_path = paths.root_config_path()
    if not lexists(fs, config_path):
        return RootConfig()

    data = _read_toml(fs, config_path)
    rules_raw = data.get("rules")
    rules = None
    if rules_raw is not None:
        if not isinstance(rules_raw, list):
            raise ConfigError(f"{config_path}: 'rules' must be an array of tables")
        rules = tuple(Rule.from_raw(item, origin=str(config_path)) for item in rules_raw)

    if "pack_ignore" in data:
        return RootConfig(
            rules=rules,
            pack_ignore=_string_list(data["pack_ignore"], key="pack_ignore", origin=config_path),
        )
    return RootConfig(rules=rules)


def load_pack_config(pack_path: Path, fs: Filesystem) -> PackConfig | None:
    """Load a pack's ``.dotpack.toml``; ``None`` when the pack has none."""

    config_path = Path(pack_path) / PACK_CONFIG_FILENAME
    if not lexists(fs, config_path):
        return None

    data = _read_toml(fs, config_path)
    ignore = _string_list(data.get("ignore"), key="ignore", origin=config_path)

    rules_raw = data.get("rules") or []
    if not isinstance(rules_raw, list):
        raise ConfigError(f"{config_path}: 'rules' must be an array of tables")
    rules = tuple(Rule.from_raw(item, origin=str(config_path)) for item in rules_raw)

    handlers_raw = data.get("handlers") or {}
    if not isinstance(handlers_raw, Mapping):
        raise ConfigError(f"{config_path}: 'handlers' must be a table")
    handlers: Dict[str, Dict[str, Any]] = {}
    for name, options in handlers_raw.items():
        if not isinstance(options, Mapping):
            raise ConfigError(f"{config_path}: [handlers.{name}] must be a table")
        validate_handler_options(name, options)
        handlers[name] = dict(options)

    return PackConfig(ignore=ignore, rules=rules, handlers=handlers)
