"""Pack discovery under the dotfiles root."""

from __future__ import annotations

import logging
from fnmatch import fnmatchcase
from typing import Iterable, Sequence

from .config import RootConfig, load_pack_config
from .errors import FilesystemError, NotFoundError
from .filesystem import Filesystem, lexists
from .models import Pack
from .paths import IGNORE_FILENAME, Paths

logger = logging.getLogger(__name__)


def discover_packs(paths: Paths, fs: Filesystem, config: RootConfig | None = None) -> list[Pack]:
    """Return every pack directly under the dotfiles root, sorted by name.

    Hidden directories, names matching ``pack_ignore`` and directories holding
    a ``.dotpackignore`` marker are not packs.
    """

    config = config or RootConfig()
    root = paths.dotfiles_root
    try:
        names = fs.read_dir(root)
    except FileNotFoundError as exc:
        raise NotFoundError(f"Dotfiles root '{root}' does not exist") from exc
    except OSError as exc:
        raise FilesystemError(f"Failed to list dotfiles root '{root}': {exc}") from exc

    packs: list[Pack] = []
    for name in names:
        if name.startswith("."):
            continue
        if any(fnmatchcase(name, pattern) for pattern in config.pack_ignore):
            logger.debug("Skipping '%s': matches pack_ignore", name)
            continue
        path = root / name
        try:
            if not fs.stat(path).is_dir:
                continue
        except OSError:
            continue
        if lexists(fs, path / IGNORE_FILENAME):
            logger.debug("Skipping '%s': contains %s", name, IGNORE_FILENAME)
            continue
        packs.append(Pack(name=name, path=path, config=load_pack_config(path, fs)))
    return packs


def select_packs(packs: Sequence[Pack], names: Iterable[str] | None) -> list[Pack]:
    """Pick packs by name in the order given; no names selects every pack."""

    wanted = [name.rstrip("/") for name in names or ()]
    if not wanted:
        return list(packs)

    by_name = {pack.name: pack for pack in packs}
    selected: list[Pack] = []
    for name in wanted:
        pack = by_name.get(name)
        if pack is None:
            raise NotFoundError(f"Pack '{name}' not found")
        if pack not in selected:
            selected.append(pack)
    return selected
