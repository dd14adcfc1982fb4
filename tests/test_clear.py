from __future__ import annotations

from pathlib import Path

from dotpack.clear import approve_all, clear_pack, decline_all
from dotpack.datastore import DataStore
from dotpack.filesystem import MemoryFilesystem, lexists
from dotpack.handlers import build_handlers
from dotpack.models import ConfirmationRequest, Pack, RuleMatch
from dotpack.paths import Paths


def _write(fs: MemoryFilesystem, path: str, data: bytes = b"") -> Path:
    target = Path(path)
    fs.mkdir_all(target.parent)
    fs.write_file(target, data)
    return target


def _deploy_vim(datastore: DataStore, mem_fs: MemoryFilesystem) -> Path:
    source = _write(mem_fs, "/d/vim/.vimrc")
    link = datastore.create_data_link("vim", "symlink", source)
    datastore.create_user_link(link, Path("/h/.vimrc"))
    datastore.run_and_record("vim", "install", "true", "install.sh.sentinel", "aaa", cwd=Path("/d/vim"))
    return source


def test_clear_pack_removes_links_and_state(
    datastore: DataStore, mem_fs: MemoryFilesystem, mem_paths: Paths
) -> None:
    _deploy_vim(datastore, mem_fs)
    handlers = build_handlers(mem_paths, mem_fs)

    result = clear_pack(Pack("vim", Path("/d/vim")), handlers, datastore, mem_fs, mem_paths, environ={})

    assert not result.failed
    assert [handler.handler for handler in result.handlers] == ["install", "symlink"]
    assert all(handler.state_removed for handler in result.handlers)
    assert not lexists(mem_fs, Path("/h/.vimrc"))
    assert mem_fs.read_dir(Path("/data/packs/vim")) == []
    assert lexists(mem_fs, Path("/d/vim/.vimrc"))


def test_clear_pack_dry_run_keeps_everything(
    datastore: DataStore, mem_fs: MemoryFilesystem, mem_paths: Paths
) -> None:
    _deploy_vim(datastore, mem_fs)
    before = dict(mem_fs._nodes)

    result = clear_pack(
        Pack("vim", Path("/d/vim")),
        build_handlers(mem_paths, mem_fs),
        datastore,
        mem_fs,
        mem_paths,
        dry_run=True,
        environ={},
    )

    assert dict(mem_fs._nodes) == before
    assert {item.type for item in result.items} == {"sentinel", "symlink"}
    assert not any(handler.state_removed for handler in result.handlers)


def test_clear_pack_without_state_is_a_no_op(
    datastore: DataStore, mem_fs: MemoryFilesystem, mem_paths: Paths
) -> None:
    result = clear_pack(Pack("vim", Path("/d/vim")), build_handlers(mem_paths, mem_fs), datastore, mem_fs, mem_paths)

    assert result.handlers == ()
    assert not result.failed


def test_unknown_handler_state_is_removed(datastore: DataStore, mem_fs: MemoryFilesystem, mem_paths: Paths) -> None:
    _write(mem_fs, "/data/packs/vim/legacy/marker", b"x")

    result = clear_pack(Pack("vim", Path("/d/vim")), build_handlers(mem_paths, mem_fs), datastore, mem_fs, mem_paths)

    assert [(handler.handler, handler.state_removed) for handler in result.handlers] == [("legacy", True)]
    assert [item.type for item in result.items] == ["state"]
    assert not lexists(mem_fs, Path("/data/packs/vim/legacy"))


def _record_brewfile(datastore: DataStore, mem_fs: MemoryFilesystem) -> None:
    _write(mem_fs, "/d/dev/Brewfile", b'brew "ripgrep"\n')
    homebrew = build_handlers(Paths("/d", "/data", "/h"), mem_fs)["homebrew"]
    [operation] = homebrew.to_operations([RuleMatch("dev", Path("Brewfile"), Path("/d/dev/Brewfile"), "homebrew")])
    datastore.run_and_record("dev", "homebrew", operation.command, operation.sentinel, operation.checksum, cwd=Path("/d/dev"))


def test_declined_confirmation_removes_state_only(
    datastore: DataStore, mem_fs: MemoryFilesystem, mem_paths: Paths, command_runner
) -> None:
    _record_brewfile(datastore, mem_fs)
    asked: list[ConfirmationRequest] = []

    def confirmer(request: ConfirmationRequest) -> bool:
        asked.append(request)
        return decline_all(request)

    result = clear_pack(
        Pack("dev", Path("/d/dev")),
        build_handlers(mem_paths, mem_fs),
        datastore,
        mem_fs,
        mem_paths,
        confirmer=confirmer,
        environ={"DOTPACK_HOMEBREW_UNINSTALL": "true"},
    )

    [handler] = result.handlers
    assert len(asked) == 1
    assert not handler.confirmed
    assert handler.state_removed
    assert [command for command in command_runner.commands if "uninstall" in command] == []


def test_approved_confirmation_uninstalls(
    datastore: DataStore, mem_fs: MemoryFilesystem, mem_paths: Paths, command_runner
) -> None:
    _record_brewfile(datastore, mem_fs)

    result = clear_pack(
        Pack("dev", Path("/d/dev")),
        build_handlers(mem_paths, mem_fs),
        datastore,
        mem_fs,
        mem_paths,
        confirmer=approve_all,
        environ={"DOTPACK_HOMEBREW_UNINSTALL": "true"},
    )

    assert not result.failed
    assert command_runner.commands[-1] == "brew uninstall ripgrep"


def test_failing_hook_keeps_state(datastore: DataStore, mem_fs: MemoryFilesystem, mem_paths: Paths, command_runner) -> None:
    _record_brewfile(datastore, mem_fs)
    command_runner.returncode = 1

    result = clear_pack(
        Pack("dev", Path("/d/dev")),
        build_handlers(mem_paths, mem_fs),
        datastore,
        mem_fs,
        mem_paths,
        confirmer=approve_all,
        environ={"DOTPACK_HOMEBREW_UNINSTALL": "true"},
    )

    assert result.failed
    assert datastore.has_handler_state("dev", "homebrew")
