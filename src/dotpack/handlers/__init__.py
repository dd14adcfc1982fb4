"""Built-in handlers and the handler table passed to the pipeline."""

from __future__ import annotations

from ..filesystem import Filesystem
from ..paths import Paths
from .base import ClearContext, Handler
from .homebrew import HomebrewHandler, parse_brewfile
from .install import InstallHandler
from .path import PathHandler
from .shell import ShellHandler
from .symlink import SymlinkHandler

__all__ = [
    "ClearContext",
    "Handler",
    "HomebrewHandler",
    "InstallHandler",
    "PathHandler",
    "ShellHandler",
    "SymlinkHandler",
    "build_handlers",
    "parse_brewfile",
]


def build_handlers(paths: Paths, fs: Filesystem) -> dict[str, Handler]:
    """Return a fresh handler table keyed by handler name."""

    handlers: list[Handler] = [
        SymlinkHandler(paths),
        ShellHandler(),
        PathHandler(),
        InstallHandler(fs),
        HomebrewHandler(fs),
    ]
    return {handler.name: handler for handler in handlers}
