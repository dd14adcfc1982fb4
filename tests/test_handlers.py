from __future__ import annotations

from hashlib import sha256
from pathlib import Path

import pytest

from dotpack.datastore import DataStore
from dotpack.errors import ConfigError, ConflictError, ExecError, NotFoundError
from dotpack.filesystem import MemoryFilesystem, lexists
from dotpack.handlers import (
    ClearContext,
    HomebrewHandler,
    InstallHandler,
    PathHandler,
    ShellHandler,
    SymlinkHandler,
    build_handlers,
    parse_brewfile,
)
from dotpack.models import CreateDataLink, CreateUserLink, HandlerCategory, Pack, RuleMatch, RunCommand
from dotpack.paths import Paths


def _write(fs: MemoryFilesystem, path: str, data: bytes = b"") -> Path:
    target = Path(path)
    fs.mkdir_all(target.parent)
    fs.write_file(target, data)
    return target


def _match(pack: str, relative: str, handler: str, **options: str) -> RuleMatch:
    return RuleMatch(
        pack=pack,
        relative_path=Path(relative),
        absolute_path=Path("/d") / pack / relative,
        handler=handler,
        options=options,
    )


def test_handler_table(mem_paths: Paths, mem_fs: MemoryFilesystem) -> None:
    handlers = build_handlers(mem_paths, mem_fs)

    assert sorted(handlers) == ["homebrew", "install", "path", "shell", "symlink"]
    assert handlers["symlink"].state_dir_name == "symlinks"
    assert handlers["shell"].state_dir_name == "shell"
    assert handlers["install"].category is HandlerCategory.CODE_EXECUTION
    assert handlers["path"].category is HandlerCategory.CONFIGURATION


def test_symlink_emits_data_link_then_user_link(mem_paths: Paths) -> None:
    operations = SymlinkHandler(mem_paths).to_operations([_match("vim", ".vimrc", "symlink")])

    assert operations == [
        CreateDataLink(pack="vim", handler="symlink", source=Path("/d/vim/.vimrc")),
        CreateUserLink(pack="vim", handler="symlink", source=Path("/d/vim/.vimrc"), target=Path("/h/.vimrc")),
    ]


def test_symlink_target_option_expands_variables(mem_paths: Paths, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DOTPACK_TEST_CONFIG", "/h/.config")

    operations = SymlinkHandler(mem_paths).to_operations(
        [_match("nvim", "init.lua", "symlink", target="$DOTPACK_TEST_CONFIG/nvim")]
    )

    assert operations[1].target == Path("/h/.config/nvim/init.lua")


def test_symlink_conflict_names_both_sources(mem_paths: Paths) -> None:
    handler = SymlinkHandler(mem_paths)

    with pytest.raises(ConflictError) as excinfo:
        handler.to_operations([_match("a", ".config/x", "symlink"), _match("b", ".config/x", "symlink")])

    assert "/d/a/.config/x" in str(excinfo.value)
    assert "/d/b/.config/x" in str(excinfo.value)


def test_symlink_rejects_unknown_and_non_string_options(mem_paths: Paths) -> None:
    handler = SymlinkHandler(mem_paths)
    bad_type = RuleMatch("vim", Path(".vimrc"), Path("/d/vim/.vimrc"), "symlink", {"target": 3})

    with pytest.raises(ConfigError):
        handler.to_operations([bad_type])
    with pytest.raises(ConfigError):
        handler.to_operations([_match("vim", ".vimrc", "symlink", mode="copy")])


def test_shell_emits_data_links_only() -> None:
    operations = ShellHandler().to_operations([_match("bash", "aliases.sh", "shell", placement="aliases")])

    assert operations == [CreateDataLink(pack="bash", handler="shell", source=Path("/d/bash/aliases.sh"))]


def test_path_deduplicates_pack_relative_dirs() -> None:
    matches = [_match("tools", "bin", "path"), _match("tools", "bin", "path"), _match("tools", ".local/bin", "path")]

    operations = PathHandler().to_operations(matches)

    assert operations == [
        CreateDataLink(pack="tools", handler="path", source=Path("/d/tools/bin")),
        CreateDataLink(pack="tools", handler="path", source=Path("/d/tools/.local/bin")),
    ]


def test_install_emits_checksummed_run_command(mem_fs: MemoryFilesystem) -> None:
    _write(mem_fs, "/d/dev/install.sh", b"C1")

    operations = InstallHandler(mem_fs).to_operations([_match("dev", "install.sh", "install")])

    assert operations == [
        RunCommand(
            pack="dev",
            handler="install",
            source=Path("/d/dev/install.sh"),
            command="/bin/sh /d/dev/install.sh",
            sentinel="install.sh.sentinel",
            checksum=sha256(b"C1").hexdigest(),
        )
    ]


def test_install_missing_source_is_not_found(mem_fs: MemoryFilesystem) -> None:
    with pytest.raises(NotFoundError):
        InstallHandler(mem_fs).to_operations([_match("dev", "install.sh", "install")])


def test_homebrew_sentinel_embeds_checksum(mem_fs: MemoryFilesystem) -> None:
    _write(mem_fs, "/d/dev/Brewfile", b'brew "git"\n')
    checksum = sha256(b'brew "git"\n').hexdigest()

    [operation] = HomebrewHandler(mem_fs).to_operations([_match("dev", "Brewfile", "homebrew")])

    assert isinstance(operation, RunCommand)
    assert operation.command == "brew bundle --file=/d/dev/Brewfile"
    assert operation.sentinel == f"dev_Brewfile-{checksum}"
    assert HomebrewHandler.brewfile_for_sentinel("dev", operation.sentinel) == "Brewfile"
    assert HomebrewHandler.brewfile_for_sentinel("other", operation.sentinel) is None


def test_parse_brewfile() -> None:
    content = """
# tools
tap "homebrew/cask-fonts"
brew "ripgrep"
brew 'fd', args: ["HEAD"]
cask "iterm2"
mas "Xcode", id: 497799835
"""

    packages = parse_brewfile(content)

    assert [(package.kind, package.name) for package in packages] == [
        ("brew", "fd"),
        ("cask", "iterm2"),
        ("brew", "ripgrep"),
    ]


def _deploy_symlink(datastore: DataStore, mem_fs: MemoryFilesystem, relative: str) -> tuple[Path, Path]:
    source = _write(mem_fs, f"/d/vim/{relative}", b"x")
    link = datastore.create_data_link("vim", "symlink", source)
    user = Path("/h") / relative
    datastore.create_user_link(link, user)
    return link, user


def _ctx(datastore: DataStore, mem_fs: MemoryFilesystem, mem_paths: Paths, pack: str = "vim", **kwargs) -> ClearContext:
    return ClearContext(
        pack=Pack(name=pack, path=Path("/d") / pack),
        datastore=datastore,
        fs=mem_fs,
        paths=mem_paths,
        **kwargs,
    )


def test_symlink_clear_removes_only_managed_links(
    datastore: DataStore, mem_fs: MemoryFilesystem, mem_paths: Paths
) -> None:
    _, vimrc = _deploy_symlink(datastore, mem_fs, ".vimrc")
    _, gvimrc = _deploy_symlink(datastore, mem_fs, ".gvimrc")
    mem_fs.remove(gvimrc)
    _write(mem_fs, str(gvimrc), b"user file")

    items = SymlinkHandler(mem_paths).clear(_ctx(datastore, mem_fs, mem_paths))

    assert [item.path for item in items] == [vimrc]
    assert not lexists(mem_fs, vimrc)
    assert mem_fs.read_file(gvimrc) == b"user file"


def test_symlink_clear_dry_run_reports_without_removing(
    datastore: DataStore, mem_fs: MemoryFilesystem, mem_paths: Paths
) -> None:
    _, vimrc = _deploy_symlink(datastore, mem_fs, ".vimrc")

    items = SymlinkHandler(mem_paths).clear(_ctx(datastore, mem_fs, mem_paths, dry_run=True))

    assert [item.path for item in items] == [vimrc]
    assert lexists(mem_fs, vimrc)


def test_path_clear_removes_deployed_links(datastore: DataStore, mem_fs: MemoryFilesystem, mem_paths: Paths) -> None:
    mem_fs.mkdir_all(Path("/d/tools/bin"))
    link = datastore.create_data_link("tools", "path", Path("/d/tools/bin"))
    deployed = datastore.link_deployed("path", "tools", link)

    items = PathHandler().clear(_ctx(datastore, mem_fs, mem_paths, pack="tools"))

    assert [item.path for item in items] == [deployed]
    assert "/d/tools/bin" in items[0].description
    assert not lexists(mem_fs, deployed)


def test_install_clear_lists_sentinels(datastore: DataStore, mem_fs: MemoryFilesystem, mem_paths: Paths) -> None:
    datastore.run_and_record("dev", "install", "true", "install.sh.sentinel", "aaa", cwd=Path("/d/dev"))

    items = InstallHandler(mem_fs).clear(_ctx(datastore, mem_fs, mem_paths, pack="dev"))

    assert [item.type for item in items] == ["sentinel"]
    assert lexists(mem_fs, items[0].path)


def _record_brewfile(datastore: DataStore, mem_fs: MemoryFilesystem) -> HomebrewHandler:
    _write(mem_fs, "/d/dev/Brewfile", b'brew "ripgrep"\ncask "iterm2"\n')
    handler = HomebrewHandler(mem_fs)
    [operation] = handler.to_operations([_match("dev", "Brewfile", "homebrew")])
    datastore.run_and_record("dev", "homebrew", operation.command, operation.sentinel, operation.checksum, cwd=Path("/d/dev"))
    return handler


def test_homebrew_clear_without_opt_in_keeps_packages(
    datastore: DataStore, mem_fs: MemoryFilesystem, mem_paths: Paths, command_runner
) -> None:
    handler = _record_brewfile(datastore, mem_fs)
    ctx = _ctx(datastore, mem_fs, mem_paths, pack="dev", environ={})

    assert handler.get_clear_confirmation(ctx) is None
    items = handler.clear(ctx)

    assert [item.type for item in items] == ["sentinel"]
    assert command_runner.commands == ["brew bundle --file=/d/dev/Brewfile"]


def test_homebrew_clear_with_opt_in_uninstalls(
    datastore: DataStore, mem_fs: MemoryFilesystem, mem_paths: Paths, command_runner
) -> None:
    handler = _record_brewfile(datastore, mem_fs)
    ctx = _ctx(datastore, mem_fs, mem_paths, pack="dev", environ={"DOTPACK_HOMEBREW_UNINSTALL": "true"})

    request = handler.get_clear_confirmation(ctx)
    assert request is not None
    assert request.items == ("cask iterm2", "brew ripgrep")

    items = handler.clear(ctx)

    assert [item.description for item in items if item.type == "brew_package"] == ["cask iterm2", "brew ripgrep"]
    assert command_runner.commands[1:] == ["brew uninstall --cask iterm2", "brew uninstall ripgrep"]


def test_homebrew_clear_reports_failed_uninstalls(
    datastore: DataStore, mem_fs: MemoryFilesystem, mem_paths: Paths, command_runner
) -> None:
    handler = _record_brewfile(datastore, mem_fs)
    command_runner.returncode = 1
    ctx = _ctx(datastore, mem_fs, mem_paths, pack="dev", environ={"DOTPACK_HOMEBREW_UNINSTALL": "1"})

    with pytest.raises(ExecError):
        handler.clear(ctx)
