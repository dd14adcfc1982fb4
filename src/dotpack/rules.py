"""Decides which handler owns each file in a pack."""

from __future__ import annotations

import logging
from fnmatch import fnmatchcase
from pathlib import Path, PurePosixPath
from typing import Iterable, Sequence

from .config import PackConfig, RootConfig, Rule
from .errors import FilesystemError, NotFoundError
from .filesystem import Filesystem
from .models import Pack, RuleMatch
from .paths import IGNORE_FILENAME, PACK_CONFIG_FILENAME

logger = logging.getLogger(__name__)

SPECIAL_FILES = frozenset({PACK_CONFIG_FILENAME, IGNORE_FILENAME, ".git", ".gitignore", ".DS_Store"})

DEFAULT_EXCLUSIONS = ("*.bak", "*.tmp", "*.swp", ".DS_Store", "#*#", "*~")


def default_rules() -> tuple[Rule, ...]:
    """Return the built-in rule set, evaluated top to bottom."""

    rules = [Rule(pattern=f"!{pattern}") for pattern in DEFAULT_EXCLUSIONS]
    rules += [
        Rule(pattern="install.sh", handler="install"),
        Rule(pattern="Brewfile", handler="homebrew"),
        Rule(pattern="profile.sh", handler="shell", options={"placement": "environment"}),
        Rule(pattern="login.sh", handler="shell", options={"placement": "login"}),
        Rule(pattern="*aliases.sh", handler="shell", options={"placement": "aliases"}),
        Rule(pattern="bin/", handler="path"),
        Rule(pattern=".local/bin/", handler="path"),
        Rule(pattern="*", handler="symlink"),
    ]
    return tuple(rules)


def effective_rules(root_config: RootConfig | None, pack_config: PackConfig | None) -> tuple[Rule, ...]:
    """Pack rules first, then the root's rules (or the defaults)."""

    global_rules = root_config.rules if root_config is not None and root_config.rules is not None else default_rules()
    pack_rules = pack_config.rules if pack_config is not None else ()
    return tuple(pack_rules) + tuple(global_rules)


def matches_pattern(pattern: str, relative_path: PurePosixPath, *, is_dir: bool) -> bool:
    """Match ``pattern`` against a pack-relative path.

    A trailing ``/`` restricts the pattern to directories. Patterns containing
    ``/`` are matched against the whole relative path, others against the name.
    """

    pattern = pattern.removeprefix("!")
    dir_only = pattern.endswith("/")
    pattern = pattern.rstrip("/")
    if not pattern:
        return False
    if dir_only and not is_dir:
        return False
    if "/" in pattern:
        return fnmatchcase(relative_path.as_posix(), pattern)
    return fnmatchcase(relative_path.name, pattern)


def _excluded(rules: Sequence[Rule], ignore: Iterable[str], relative_path: PurePosixPath, *, is_dir: bool) -> bool:
    for pattern in ignore:
        if matches_pattern(pattern, relative_path, is_dir=is_dir):
            return True
    return any(rule.is_exclusion and matches_pattern(rule.pattern, relative_path, is_dir=is_dir) for rule in rules)


def _first_match(rules: Sequence[Rule], relative_path: PurePosixPath, *, is_dir: bool) -> Rule | None:
    for rule in rules:
        if rule.is_exclusion:
            continue
        if is_dir and not rule.pattern.endswith("/"):
            continue
        if matches_pattern(rule.pattern, relative_path, is_dir=is_dir):
            return rule
    return None


def _options_for(pack: Pack, rule: Rule) -> dict:
    options = pack.config.handler_options(rule.handler) if pack.config is not None else {}
    options.update(rule.options)
    return options


def scan_pack(pack: Pack, fs: Filesystem, rules: Sequence[Rule]) -> list[RuleMatch]:
    """Walk ``pack`` and pair every deployable entry with its handler."""

    ignore = pack.config.ignore if pack.config is not None else ()
    matches: list[RuleMatch] = []
    pending = [PurePosixPath()]

    while pending:
        directory = pending.pop()
        absolute_dir = pack.path / directory
        try:
            names = fs.read_dir(absolute_dir)
        except FileNotFoundError as exc:
            raise NotFoundError(f"Pack directory '{absolute_dir}' does not exist") from exc
        except OSError as exc:
            raise FilesystemError(f"Failed to list '{absolute_dir}': {exc}") from exc

        for name in names:
            if name in SPECIAL_FILES:
                continue
            relative = directory / name
            absolute = pack.path / relative
            try:
                info = fs.lstat(absolute)
            except OSError as exc:
                raise FilesystemError(f"Failed to stat '{absolute}': {exc}") from exc
            is_dir = info.is_dir

            if _excluded(rules, ignore, relative, is_dir=is_dir):
                logger.debug("Excluded %s/%s", pack.name, relative)
                continue

            rule = _first_match(rules, relative, is_dir=is_dir)
            if rule is None:
                if is_dir:
                    pending.append(relative)
                else:
                    logger.debug("No rule matches %s/%s", pack.name, relative)
                continue

            matches.append(
                RuleMatch(
                    pack=pack.name,
                    relative_path=Path(relative),
                    absolute_path=absolute,
                    handler=rule.handler,
                    options=_options_for(pack, rule),
                )
            )

    matches.sort(key=lambda match: match.relative_path.as_posix())
    return matches


def match_pack(pack: Pack, fs: Filesystem, root_config: RootConfig | None = None) -> list[RuleMatch]:
    return scan_pack(pack, fs, effective_rules(root_config, pack.config))


def match_packs(packs: Iterable[Pack], fs: Filesystem, root_config: RootConfig | None = None) -> dict[str, list[RuleMatch]]:
    """Return rule matches for each pack, keyed by pack name in input order."""

    return {pack.name: match_pack(pack, fs, root_config) for pack in packs}
