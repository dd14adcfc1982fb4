"""Drives ``brew bundle`` from a pack's Brewfile."""

from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from ..config import validate_handler_options
from ..errors import ExecError
from ..filesystem import Filesystem
from ..models import ClearedItem, ConfirmationRequest, HandlerCategory, Operation, RuleMatch, RunCommand
from ..paths import ENV_HOMEBREW_UNINSTALL
from .base import ClearContext, Handler, sentinel_items, source_checksum

logger = logging.getLogger(__name__)

TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class BrewPackage:
    name: str
    kind: str
    brewfile: str


def parse_brewfile(content: str, *, brewfile: str = "Brewfile") -> list[BrewPackage]:
    """Extract ``brew`` and ``cask`` entries from Brewfile text, sorted by name."""

    packages: list[BrewPackage] = []
    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        kind, _, rest = line.partition(" ")
        if kind not in {"brew", "cask"}:
            kind, _, rest = line.partition("\t")
            if kind not in {"brew", "cask"}:
                continue
        name = _package_name(rest.strip())
        if name:
            packages.append(BrewPackage(name=name, kind=kind, brewfile=brewfile))
    return sorted(packages, key=lambda package: package.name)


def _package_name(text: str) -> str:
    if text[:1] in {'"', "'"}:
        end = text.find(text[0], 1)
        if end >= 0:
            return text[1:end]
    parts = text.replace(",", " ").split()
    return parts[0] if parts else ""


class HomebrewHandler(Handler):
    """Emits ``brew bundle`` guarded by ``<pack>_<brewfile>-<checksum>``.

    Uninstalling on clear is opt-in via ``DOTPACK_HOMEBREW_UNINSTALL=true`` and
    a confirmation; otherwise only the run records are removed.
    """

    name = "homebrew"
    category = HandlerCategory.CODE_EXECUTION

    def __init__(self, fs: Filesystem) -> None:
        self.fs = fs

    @staticmethod
    def sentinel_name(pack: str, brewfile: Path, checksum: str) -> str:
        return f"{pack}_{brewfile.name}-{checksum}"

    @staticmethod
    def brewfile_for_sentinel(pack: str, sentinel: str) -> str | None:
        prefix = f"{pack}_"
        if not sentinel.startswith(prefix):
            return None
        name, separator, _ = sentinel[len(prefix):].rpartition("-")
        return name if separator and name else None

    def to_operations(self, matches: Sequence[RuleMatch]) -> list[Operation]:
        operations: list[Operation] = []
        for match in matches:
            validate_handler_options(self.name, match.options)
            checksum = source_checksum(self.fs, match.absolute_path)
            operations.append(
                RunCommand(
                    pack=match.pack,
                    handler=self.name,
                    source=match.absolute_path,
                    command=f"brew bundle --file={shlex.quote(str(match.absolute_path))}",
                    sentinel=self.sentinel_name(match.pack, match.absolute_path, checksum),
                    checksum=checksum,
                )
            )
        logger.debug("homebrew: %d matches -> %d operations", len(matches), len(operations))
        return operations

    def uninstall_enabled(self, ctx: ClearContext) -> bool:
        return ctx.environ.get(ENV_HOMEBREW_UNINSTALL, "").strip().lower() in TRUTHY

    def installed_packages(self, ctx: ClearContext) -> list[BrewPackage]:
        """Return the packages listed in the Brewfiles the pack has recorded runs for."""

        packages: list[BrewPackage] = []
        seen: set[str] = set()
        for sentinel in ctx.datastore.list_handler_sentinels(ctx.pack.name, self.name):
            brewfile = self.brewfile_for_sentinel(ctx.pack.name, sentinel)
            if brewfile is None or brewfile in seen:
                continue
            seen.add(brewfile)
            path = ctx.pack.path / brewfile
            try:
                content = self.fs.read_file(path).decode("utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                logger.warning("Cannot read %s to list packages: %s", path, exc)
                continue
            packages.extend(parse_brewfile(content, brewfile=brewfile))
        return packages

    def get_clear_confirmation(self, ctx: ClearContext) -> ConfirmationRequest | None:
        if not self.uninstall_enabled(ctx):
            return None
        packages = self.installed_packages(ctx)
        if not packages:
            return None
        return ConfirmationRequest(
            id=f"homebrew-uninstall-{ctx.pack.name}",
            title=f"Uninstall {len(packages)} Homebrew package(s) installed by pack '{ctx.pack.name}'?",
            description="Packages listed in the pack's Brewfile will be removed with 'brew uninstall'.",
            items=tuple(f"{package.kind} {package.name}" for package in packages),
        )

    def clear(self, ctx: ClearContext) -> list[ClearedItem]:
        items = sentinel_items(ctx, self)
        if not self.uninstall_enabled(ctx):
            return items

        failures: list[str] = []
        for package in self.installed_packages(ctx):
            flag = " --cask" if package.kind == "cask" else ""
            command = f"brew uninstall{flag} {shlex.quote(package.name)}"
            items.append(
                ClearedItem(type="brew_package", path=ctx.pack.path / package.brewfile, description=f"{package.kind} {package.name}")
            )
            if ctx.dry_run:
                continue
            logger.info("Running '%s'", command)
            if ctx.datastore.runner(command, ctx.pack.path) != 0:
                failures.append(package.name)

        if failures:
            raise ExecError(f"Failed to uninstall Homebrew package(s): {', '.join(failures)}")
        return items

    def format_cleared_item(self, item: ClearedItem, dry_run: bool) -> str:
        if item.type == "brew_package":
            verb = "Would uninstall" if dry_run else "Uninstalled"
            return f"{verb} {item.description}"
        return super().format_cleared_item(item, dry_run)
