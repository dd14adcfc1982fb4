from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from dotpack.datastore import DataStore
from dotpack.filesystem import MemoryFilesystem
from dotpack.paths import Paths


class RecordingRunner:
    """Stands in for ``/bin/sh -c`` and remembers what it was asked to run."""

    def __init__(self, returncode: int = 0) -> None:
        self.returncode = returncode
        self.calls: list[tuple[str, Path]] = []

    def __call__(self, command: str, cwd: Path) -> int:
        self.calls.append((command, Path(cwd)))
        return self.returncode

    @property
    def commands(self) -> list[str]:
        return [command for command, _ in self.calls]


def fixed_clock() -> datetime:
    return datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


@pytest.fixture
def fake_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    monkeypatch.delenv("DOTFILES_ROOT", raising=False)
    monkeypatch.delenv("DOTPACK_DATA_DIR", raising=False)
    monkeypatch.delenv("DOTPACK_HOMEBREW_UNINSTALL", raising=False)
    monkeypatch.delenv("XDG_DATA_HOME", raising=False)
    return home


@pytest.fixture
def mem_fs() -> MemoryFilesystem:
    fs = MemoryFilesystem()
    for directory in ("/d", "/h", "/data"):
        fs.mkdir_all(Path(directory))
    return fs


@pytest.fixture
def mem_paths() -> Paths:
    return Paths("/d", "/data", "/h")


@pytest.fixture
def command_runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def datastore(mem_fs: MemoryFilesystem, mem_paths: Paths, command_runner: RecordingRunner) -> DataStore:
    return DataStore(mem_fs, mem_paths, runner=command_runner, clock=fixed_clock)
