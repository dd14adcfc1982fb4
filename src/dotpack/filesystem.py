"""Filesystem capability surface for dotpack.

Every component of the deployment engine talks to the disk through a
``Filesystem``. ``OSFilesystem`` is instantiated once at the edge (the CLI or
``DotpackManager``); ``MemoryFilesystem`` backs the unit tests. Both raise the
standard ``OSError`` subclasses (``FileNotFoundError``, ``FileExistsError``,
``IsADirectoryError``, ``NotADirectoryError``) so callers handle them alike.
"""

from __future__ import annotations

import errno
import os
import posixpath
import shutil
import stat as stat_module
from dataclasses import dataclass
from hashlib import sha256
from pathlib import Path, PurePosixPath
from typing import Protocol

DIR_MODE = 0o755
FILE_MODE = 0o644


@dataclass(frozen=True, slots=True)
class FileInfo:
    """The subset of ``stat`` results dotpack relies on."""

    is_dir: bool
    is_file: bool
    is_symlink: bool
    size: int
    mode: int


class Filesystem(Protocol):
    def stat(self, path: Path) -> FileInfo: ...

    def lstat(self, path: Path) -> FileInfo: ...

    def read_file(self, path: Path) -> bytes: ...

    def write_file(self, path: Path, data: bytes, mode: int = FILE_MODE) -> None: ...

    def mkdir_all(self, path: Path, mode: int = DIR_MODE) -> None: ...

    def remove(self, path: Path) -> None: ...

    def remove_all(self, path: Path) -> None: ...

    def symlink(self, target: Path, link: Path) -> None: ...

    def readlink(self, path: Path) -> Path: ...

    def read_dir(self, path: Path) -> list[str]: ...


class OSFilesystem:
    """``Filesystem`` backed by the real operating system."""

    def stat(self, path: Path) -> FileInfo:
        return _info_from_stat(os.stat(path), is_symlink=False)

    def lstat(self, path: Path) -> FileInfo:
        result = os.lstat(path)
        return _info_from_stat(result, is_symlink=stat_module.S_ISLNK(result.st_mode))

    def read_file(self, path: Path) -> bytes:
        return Path(path).read_bytes()

    def write_file(self, path: Path, data: bytes, mode: int = FILE_MODE) -> None:
        Path(path).write_bytes(data)
        os.chmod(path, mode)

    def mkdir_all(self, path: Path, mode: int = DIR_MODE) -> None:
        Path(path).mkdir(parents=True, exist_ok=True, mode=mode)

    def remove(self, path: Path) -> None:
        target = Path(path)
        if target.is_dir() and not target.is_symlink():
            target.rmdir()
        else:
            target.unlink()

    def remove_all(self, path: Path) -> None:
        target = Path(path)
        if not target.exists() and not target.is_symlink():
            return
        if target.is_symlink() or not target.is_dir():
            target.unlink()
            return
        shutil.rmtree(target)

    def symlink(self, target: Path, link: Path) -> None:
        os.symlink(target, link)

    def readlink(self, path: Path) -> Path:
        return Path(os.readlink(path))

    def read_dir(self, path: Path) -> list[str]:
        return sorted(os.listdir(path))


def _info_from_stat(result: os.stat_result, *, is_symlink: bool) -> FileInfo:
    return FileInfo(
        is_dir=stat_module.S_ISDIR(result.st_mode),
        is_file=stat_module.S_ISREG(result.st_mode),
        is_symlink=is_symlink,
        size=result.st_size,
        mode=result.st_mode & 0o7777,
    )


@dataclass
class _File:
    data: bytes
    mode: int


@dataclass
class _Dir:
    mode: int


@dataclass
class _Link:
    target: str


_ROOT = PurePosixPath("/")
_MAX_HOPS = 40


def _normalize(path: Path | PurePosixPath | str) -> PurePosixPath:
    text = str(path)
    if not text.startswith("/"):
        raise ValueError(f"MemoryFilesystem requires absolute paths, got '{text}'")
    return PurePosixPath(posixpath.normpath(text))


def _os_error(cls: type[OSError], code: int, path: PurePosixPath | Path) -> OSError:
    return cls(code, os.strerror(code), str(path))


class MemoryFilesystem:
    """In-memory ``Filesystem`` with POSIX symlink semantics."""

    def __init__(self) -> None:
        self._nodes: dict[PurePosixPath, _File | _Dir | _Link] = {_ROOT: _Dir(DIR_MODE)}

    def _resolve(self, path: PurePosixPath, *, follow_last: bool = True, hops: int = 0) -> PurePosixPath:
        current = _ROOT
        parts = path.parts[1:]
        for index, name in enumerate(parts):
            candidate = current / name
            node = self._nodes.get(candidate)
            last = index == len(parts) - 1
            if isinstance(node, _Link) and (follow_last or not last):
                if hops >= _MAX_HOPS:
                    raise _os_error(OSError, errno.ELOOP, path)
                target = PurePosixPath(node.target)
                if not target.is_absolute():
                    target = current / target
                candidate = self._resolve(_normalize(target), hops=hops + 1)
                node = self._nodes.get(candidate)
            if not last:
                if node is None:
                    raise _os_error(FileNotFoundError, errno.ENOENT, path)
                if not isinstance(node, _Dir):
                    raise _os_error(NotADirectoryError, errno.ENOTDIR, path)
            current = candidate
        return current

    def _node(self, path: Path, *, follow_last: bool = True) -> tuple[PurePosixPath, _File | _Dir | _Link]:
        real = self._resolve(_normalize(path), follow_last=follow_last)
        node = self._nodes.get(real)
        if node is None:
            raise _os_error(FileNotFoundError, errno.ENOENT, path)
        return real, node

    def _children(self, directory: PurePosixPath) -> list[PurePosixPath]:
        return [key for key in self._nodes if key != _ROOT and key.parent == directory]

    @staticmethod
    def _info(node: _File | _Dir | _Link) -> FileInfo:
        if isinstance(node, _File):
            return FileInfo(is_dir=False, is_file=True, is_symlink=False, size=len(node.data), mode=node.mode)
        if isinstance(node, _Dir):
            return FileInfo(is_dir=True, is_file=False, is_symlink=False, size=0, mode=node.mode)
        return FileInfo(is_dir=False, is_file=False, is_symlink=True, size=len(node.target), mode=0o777)

    def stat(self, path: Path) -> FileInfo:
        return self._info(self._node(path)[1])

    def lstat(self, path: Path) -> FileInfo:
        return self._info(self._node(path, follow_last=False)[1])

    def read_file(self, path: Path) -> bytes:
        _, node = self._node(path)
        if isinstance(node, _Dir):
            raise _os_error(IsADirectoryError, errno.EISDIR, path)
        if not isinstance(node, _File):
            raise _os_error(OSError, errno.ELOOP, path)
        return node.data

    def write_file(self, path: Path, data: bytes, mode: int = FILE_MODE) -> None:
        real = self._resolve(_normalize(path))
        if real.parent not in self._nodes:
            raise _os_error(FileNotFoundError, errno.ENOENT, path)
        if isinstance(self._nodes.get(real), _Dir):
            raise _os_error(IsADirectoryError, errno.EISDIR, path)
        self._nodes[real] = _File(bytes(data), mode)

    def mkdir_all(self, path: Path, mode: int = DIR_MODE) -> None:
        current = _ROOT
        for name in _normalize(path).parts[1:]:
            candidate = current / name
            node = self._nodes.get(candidate)
            if isinstance(node, _Link):
                candidate = self._resolve(candidate)
                node = self._nodes.get(candidate)
            if node is None:
                if candidate.parent not in self._nodes:
                    raise _os_error(FileNotFoundError, errno.ENOENT, candidate)
                self._nodes[candidate] = _Dir(mode)
            elif not isinstance(node, _Dir):
                raise _os_error(FileExistsError, errno.EEXIST, candidate)
            current = candidate

    def remove(self, path: Path) -> None:
        real, node = self._node(path, follow_last=False)
        if isinstance(node, _Dir) and self._children(real):
            raise _os_error(OSError, errno.ENOTEMPTY, path)
        del self._nodes[real]

    def remove_all(self, path: Path) -> None:
        try:
            real, _ = self._node(path, follow_last=False)
        except FileNotFoundError:
            return
        for key in [key for key in self._nodes if key == real or real in key.parents]:
            del self._nodes[key]

    def symlink(self, target: Path, link: Path) -> None:
        real = self._resolve(_normalize(link), follow_last=False)
        if real.parent not in self._nodes:
            raise _os_error(FileNotFoundError, errno.ENOENT, link)
        if real in self._nodes:
            raise _os_error(FileExistsError, errno.EEXIST, link)
        self._nodes[real] = _Link(str(target))

    def readlink(self, path: Path) -> Path:
        _, node = self._node(path, follow_last=False)
        if not isinstance(node, _Link):
            raise _os_error(OSError, errno.EINVAL, path)
        return Path(node.target)

    def read_dir(self, path: Path) -> list[str]:
        real, node = self._node(path)
        if not isinstance(node, _Dir):
            raise _os_error(NotADirectoryError, errno.ENOTDIR, path)
        return sorted(child.name for child in self._children(real))


def lexists(fs: Filesystem, path: Path) -> bool:
    """Return ``True`` if ``path`` exists, counting dangling symlinks."""

    try:
        fs.lstat(path)
    except (FileNotFoundError, NotADirectoryError):
        return False
    return True


def exists(fs: Filesystem, path: Path) -> bool:
    """Return ``True`` if ``path`` exists once symlinks are followed."""

    try:
        fs.stat(path)
    except (FileNotFoundError, NotADirectoryError):
        return False
    return True


def symlink_points_to(fs: Filesystem, link: Path, target: Path) -> bool:
    """Return ``True`` if ``link`` is a symlink whose literal target is ``target``."""

    try:
        return fs.readlink(link) == Path(target)
    except OSError:
        return False


def hash_file(fs: Filesystem, path: Path) -> str:
    """Return the SHA-256 hex digest of ``path`` contents."""

    return sha256(fs.read_file(path)).hexdigest()
