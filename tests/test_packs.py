from __future__ import annotations

from pathlib import Path

import pytest

from dotpack.config import RootConfig
from dotpack.errors import NotFoundError
from dotpack.filesystem import MemoryFilesystem
from dotpack.packs import discover_packs, select_packs
from dotpack.paths import Paths


def test_discover_packs_skips_hidden_ignored_and_files(mem_fs: MemoryFilesystem, mem_paths: Paths) -> None:
    for name in ("vim", "bash", ".git", "node_modules", "old", "scratch"):
        mem_fs.mkdir_all(Path("/d") / name)
    mem_fs.write_file(Path("/d/README.md"), b"")
    mem_fs.write_file(Path("/d/old/.dotpackignore"), b"")
    mem_fs.write_file(Path("/d/vim/.dotpack.toml"), b'ignore = ["*.log"]\n')

    packs = discover_packs(mem_paths, mem_fs, RootConfig(pack_ignore=("node_modules", "scr*")))

    assert [pack.name for pack in packs] == ["bash", "vim"]
    assert packs[0].config is None
    assert packs[1].config is not None and packs[1].config.ignore == ("*.log",)


def test_discover_packs_missing_root(mem_paths: Paths) -> None:
    with pytest.raises(NotFoundError):
        discover_packs(mem_paths, MemoryFilesystem())


def test_select_packs(mem_fs: MemoryFilesystem, mem_paths: Paths) -> None:
    for name in ("vim", "bash", "git"):
        mem_fs.mkdir_all(Path("/d") / name)
    packs = discover_packs(mem_paths, mem_fs)

    assert [pack.name for pack in select_packs(packs, None)] == ["bash", "git", "vim"]
    assert [pack.name for pack in select_packs(packs, ["vim/", "bash", "vim"])] == ["vim", "bash"]
    with pytest.raises(NotFoundError, match="Pack 'emacs' not found"):
        select_packs(packs, ["emacs"])
