from __future__ import annotations

import subprocess
from pathlib import Path

from typer.testing import CliRunner

from dotpack.cli import app

runner = CliRunner()


def _build_dotfiles(root: Path, marker: Path) -> None:
    (root / "vim").mkdir(parents=True)
    (root / "vim" / ".vimrc").write_text("set number\n")

    (root / "shell" / "bin").mkdir(parents=True)
    tool = root / "shell" / "bin" / "hello-dotpack"
    tool.write_text("#!/bin/sh\necho hello from dotpack\n")
    tool.chmod(0o755)
    (root / "shell" / "aliases.sh").write_text("DOTPACK_E2E_ALIAS=yes\n")

    (root / "dev").mkdir()
    (root / "dev" / "install.sh").write_text(f'echo run >> "{marker}"\n')


def _invoke(root: Path, data: Path, *args: str):
    return runner.invoke(app, ["--dotfiles-root", str(root), "--data-dir", str(data), *args])


def test_cli_full_cycle(tmp_path: Path, fake_home: Path) -> None:
    root = tmp_path / "dotfiles"
    data = tmp_path / "data"
    marker = tmp_path / "install-runs.txt"
    _build_dotfiles(root, marker)

    first = _invoke(root, data, "on")
    assert first.exit_code == 0, first.stdout
    second = _invoke(root, data, "on")
    assert second.exit_code == 0, second.stdout

    assert marker.read_text() == "run\n"
    assert (fake_home / ".vimrc").read_text() == "set number\n"

    init_script = data / "shell" / "dotpack-init.sh"
    shell = subprocess.run(
        ["/bin/sh", "-c", f'. "{init_script}"; hello-dotpack; printf "%s\\n" "$DOTPACK_E2E_ALIAS"'],
        capture_output=True,
        text=True,
        check=True,
        env={"PATH": "/usr/bin:/bin", "HOME": str(fake_home)},
    )
    assert shell.stdout.splitlines() == ["hello from dotpack", "yes"]

    status = _invoke(root, data, "status")
    assert status.exit_code == 0
    assert "pending" not in status.stdout

    off = _invoke(root, data, "off")
    assert off.exit_code == 0
    assert not (fake_home / ".vimrc").exists()
    deployed_paths = data / "deployed" / "path"
    assert not deployed_paths.exists() or not any(deployed_paths.iterdir())

    shell_after = subprocess.run(
        ["/bin/sh", "-c", f'. "{init_script}"; command -v hello-dotpack || echo missing'],
        capture_output=True,
        text=True,
        check=True,
        env={"PATH": "/usr/bin:/bin", "HOME": str(fake_home)},
    )
    assert shell_after.stdout.strip() == "missing"


def test_cli_dry_run_off_keeps_links(tmp_path: Path, fake_home: Path) -> None:
    root = tmp_path / "dotfiles"
    data = tmp_path / "data"
    _build_dotfiles(root, tmp_path / "marker.txt")
    assert _invoke(root, data, "on", "vim").exit_code == 0

    result = _invoke(root, data, "off", "vim", "--dry-run")

    assert result.exit_code == 0
    assert "Would" in result.stdout
    assert (fake_home / ".vimrc").is_symlink()
