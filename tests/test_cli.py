from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from dotpack.cli import app

runner = CliRunner()


def _make_root(tmp_path: Path) -> tuple[Path, Path]:
    root = tmp_path / "dotfiles"
    (root / "vim").mkdir(parents=True)
    (root / "vim" / ".vimrc").write_text("set number\n")
    return root, tmp_path / "data"


def _invoke(root: Path, data: Path, *args: str):
    return runner.invoke(app, ["--dotfiles-root", str(root), "--data-dir", str(data), *args])


def test_cli_on_status_off_flow(tmp_path: Path, fake_home: Path) -> None:
    root, data = _make_root(tmp_path)

    on_result = _invoke(root, data, "on", "vim")
    assert on_result.exit_code == 0
    assert (fake_home / ".vimrc").is_symlink()
    assert "Shell integration updated" in on_result.stdout

    status_result = _invoke(root, data, "status")
    assert status_result.exit_code == 0
    assert "deployed" in status_result.stdout

    off_result = _invoke(root, data, "off", "vim")
    assert off_result.exit_code == 0
    assert not (fake_home / ".vimrc").exists()


def test_cli_dry_run_changes_nothing(tmp_path: Path, fake_home: Path) -> None:
    root, data = _make_root(tmp_path)

    result = _invoke(root, data, "on", "--dry-run")

    assert result.exit_code == 0
    assert "Dry run" in result.stdout
    assert not data.exists()
    assert not (fake_home / ".vimrc").exists()


def test_cli_unknown_pack_exits_3(tmp_path: Path, fake_home: Path) -> None:
    root, data = _make_root(tmp_path)

    result = _invoke(root, data, "on", "emacs")

    assert result.exit_code == 3
    assert "not found" in result.stdout


def test_cli_invalid_config_exits_2(tmp_path: Path, fake_home: Path) -> None:
    root, data = _make_root(tmp_path)
    (root / "vim" / ".dotpack.toml").write_text("[handlers.symlink]\nmode = 'copy'\n")

    result = _invoke(root, data, "on")

    assert result.exit_code == 2


def test_cli_blocked_link_exits_1_until_forced(tmp_path: Path, fake_home: Path) -> None:
    root, data = _make_root(tmp_path)
    (fake_home / ".vimrc").write_text("mine\n")

    blocked = _invoke(root, data, "on")
    assert blocked.exit_code == 1
    assert (fake_home / ".vimrc").read_text() == "mine\n"

    forced = _invoke(root, data, "on", "--force")
    assert forced.exit_code == 0
    assert (fake_home / ".vimrc").is_symlink()


def test_cli_conflicting_packs_exit_1(tmp_path: Path, fake_home: Path) -> None:
    root, data = _make_root(tmp_path)
    (root / "gvim").mkdir()
    (root / "gvim" / ".vimrc").write_text("")

    result = _invoke(root, data, "on")

    assert result.exit_code == 1
    assert "conflict" in result.stdout.lower()


def test_cli_init_add_ignore_and_snippet(tmp_path: Path, fake_home: Path) -> None:
    root, data = _make_root(tmp_path)

    init_result = _invoke(root, data, "init", "zsh")
    assert init_result.exit_code == 0
    assert (root / "zsh" / ".dotpack.toml").exists()
    assert _invoke(root, data, "init", "zsh").exit_code == 1

    ignore_result = _invoke(root, data, "add-ignore", "zsh")
    assert ignore_result.exit_code == 0
    assert (root / "zsh" / ".dotpackignore").exists()

    snippet = _invoke(root, data, "snippet")
    assert snippet.exit_code == 0
    assert snippet.stdout.strip() == f'[ -f "{data}/shell/dotpack-init.sh" ] && . "{data}/shell/dotpack-init.sh"'


def test_cli_adopt(tmp_path: Path, fake_home: Path) -> None:
    root, data = _make_root(tmp_path)
    bashrc = fake_home / ".bashrc"
    bashrc.write_text("export EDITOR=vim\n")
    (root / "bash").mkdir()

    result = _invoke(root, data, "adopt", "bash", str(bashrc))

    assert result.exit_code == 0
    assert bashrc.is_symlink()
    assert (root / "bash" / ".bashrc").read_text() == "export EDITOR=vim\n"


@pytest.mark.parametrize("flag", [[], ["--yes"]])
def test_cli_off_homebrew_uninstall_needs_approval(
    tmp_path: Path, fake_home: Path, monkeypatch: pytest.MonkeyPatch, flag: list[str]
) -> None:
    root, data = _make_root(tmp_path)
    sentinel_dir = data / "packs" / "vim" / "homebrew"
    sentinel_dir.mkdir(parents=True)
    (sentinel_dir / "vim_Brewfile-abc").write_text("abc|2024-01-01T00:00:00+00:00")
    (root / "vim" / "Brewfile").write_text('brew "neovim"\n')
    monkeypatch.setenv("DOTPACK_HOMEBREW_UNINSTALL", "true")
    calls: list[str] = []
    monkeypatch.setattr("dotpack.manager.run_shell_command", lambda command, cwd: calls.append(command) or 0)

    result = _invoke(root, data, "off", "vim", *flag)

    assert result.exit_code == 0
    assert not sentinel_dir.exists()
    if flag:
        assert calls == ["brew uninstall neovim"]
    else:
        assert calls == []
