"""Command-line interface for dotpack."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import Settings
from .errors import ConfigError, DotpackError, NotFoundError
from .log import resolve_level, setup_logging
from .manager import DotpackManager
from .models import ConfirmationRequest, OffResult, OnResult, OperationResult, StatusReport, StatusState

app = typer.Typer(help="Deploy packs of dotfiles into your home directory", no_args_is_help=True)
console = Console()

EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_NOT_FOUND = 3


@dataclass
class CliState:
    dotfiles_root: Path | None = None
    data_dir: Path | None = None


class TyperConfirmer:
    """Asks on the terminal; ``--yes`` approves and non-interactive runs decline."""

    def __init__(self, assume_yes: bool = False) -> None:
        self.assume_yes = assume_yes

    def __call__(self, request: ConfirmationRequest) -> bool:
        if self.assume_yes:
            return True
        if not sys.stdin.isatty():
            console.print(f"[yellow]Skipping '{escape(request.title)}' (not interactive; pass --yes to approve).[/yellow]")
            return False
        console.print(f"[bold]{escape(request.title)}[/bold]")
        console.print(escape(request.description))
        for item in request.items:
            console.print(f"  - {escape(item)}")
        return typer.confirm("Proceed?", default=False)


def _load_manager(ctx: typer.Context, *, assume_yes: bool = False) -> DotpackManager:
    state: CliState = ctx.obj or CliState()
    settings = Settings.resolve(dotfiles_root=state.dotfiles_root, data_root=state.data_dir)
    return DotpackManager(settings, confirmer=TyperConfirmer(assume_yes))


def _handle_error(exc: Exception) -> None:
    if isinstance(exc, typer.Exit):
        raise exc
    if isinstance(exc, PermissionError):
        console.print("[red]Permission denied.[/red] Check that you can write to the target directories.")
        raise typer.Exit(code=EXIT_FAILURE)
    if isinstance(exc, NotFoundError):
        console.print(f"[red]{escape(str(exc))}[/red]")
        if "Pack" in str(exc):
            console.print("[yellow]Run 'dotpack status' to list the packs under your dotfiles root.[/yellow]")
        raise typer.Exit(code=EXIT_NOT_FOUND)
    if isinstance(exc, ConfigError):
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=EXIT_USAGE)
    if isinstance(exc, DotpackError):
        console.print(f"[red]{escape(str(exc))}[/red]")
        if exc.kind == "conflict":
            console.print("[yellow]Tip: move the existing file aside or rerun with --force to replace it.[/yellow]")
        raise typer.Exit(code=EXIT_FAILURE)
    raise exc


def _result_style(result: OperationResult) -> str:
    if not result.success:
        return "red"
    if result.skipped:
        return "dim"
    return "green"


def _format_on_result(result: OnResult) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Pack")
    table.add_column("Handler")
    table.add_column("Result", overflow="fold")

    for pack in result.packs:
        for handler in pack.handlers:
            if handler.error is not None:
                table.add_row(pack.pack, handler.handler, f"[red]{escape(str(handler.error))}[/red]")
            for op_result in handler.results:
                style = _result_style(op_result)
                table.add_row(pack.pack, handler.handler, f"[{style}]{escape(op_result.message)}[/{style}]")

    console.print(table)


def _format_off_result(result: OffResult, manager: DotpackManager) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Pack")
    table.add_column("Handler")
    table.add_column("Cleared", overflow="fold")

    for pack in result.packs:
        for handler_result in pack.handlers:
            handler = manager.handlers.get(handler_result.handler)
            for item in handler_result.items:
                if handler is not None and item.type != "state":
                    text = handler.format_cleared_item(item, result.dry_run)
                else:
                    text = f"{'Would remove' if result.dry_run else 'Removed'} {item.description}"
                table.add_row(pack.pack, handler_result.handler, escape(text))
            if handler_result.error is not None:
                table.add_row(pack.pack, handler_result.handler, f"[red]{escape(str(handler_result.error))}[/red]")

    console.print(table)


def _format_status(report: StatusReport) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Pack")
    table.add_column("Entry")
    table.add_column("Handler")
    table.add_column("State")
    table.add_column("Details", overflow="fold")

    status_styles = {
        StatusState.DEPLOYED: "green",
        StatusState.PENDING: "yellow",
        StatusState.OUTDATED: "yellow",
        StatusState.CONFLICT: "red",
        StatusState.BROKEN: "red",
        StatusState.ERROR: "red",
    }

    for entry in report.entries:
        style = status_styles.get(entry.state, "white")
        table.add_row(
            entry.pack,
            entry.relative_path.as_posix(),
            entry.handler,
            f"[{style}]{entry.state.value}[/{style}]",
            escape(entry.details or ""),
        )

    console.print(table)


def _format_operation_results(results: Iterable[OperationResult]) -> None:
    for result in results:
        style = _result_style(result)
        console.print(f"[{style}]{escape(result.message)}[/{style}]")


def _print_errors(errors: Iterable[DotpackError]) -> None:
    errors = list(errors)
    if not errors:
        return
    console.print(f"[red]{len(errors)} error(s):[/red]")
    for error in errors:
        console.print(f"  [red]- {escape(str(error))}[/red]")


@app.callback()
def main(
    ctx: typer.Context,
    dotfiles_root: Path | None = typer.Option(
        None,
        "--dotfiles-root",
        "-d",
        help="Directory containing your packs (defaults to $DOTFILES_ROOT, then the current directory)",
    ),
    data_dir: Path | None = typer.Option(
        None,
        "--data-dir",
        help="Where dotpack keeps its state (defaults to $DOTPACK_DATA_DIR or the XDG data directory)",
    ),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Increase log output (repeatable)"),
) -> None:
    """Deploy packs of dotfiles into your home directory."""

    setup_logging(resolve_level(verbose))
    ctx.obj = CliState(dotfiles_root=dotfiles_root, data_dir=data_dir)


@app.command()
def on(
    ctx: typer.Context,
    packs: list[str] = typer.Argument(None, help="Packs to deploy (default: all)"),
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Show what would happen without changing anything"),
    force: bool = typer.Option(False, "--force", "-f", help="Replace existing files that block a link"),
    no_provision: bool = typer.Option(False, "--no-provision", help="Skip install scripts and Brewfiles"),
    provision_rerun: bool = typer.Option(
        False,
        "--provision-rerun",
        help="Forget previous install/Brewfile runs and run them again",
    ),
) -> None:
    """Link, register and provision packs."""

    try:
        manager = _load_manager(ctx)
        result = manager.on(
            packs or None,
            dry_run=dry_run,
            force=force,
            no_provision=no_provision,
            provision_rerun=provision_rerun,
        )
        _format_on_result(result)
        if dry_run:
            console.print("[yellow]Dry run: nothing was changed.[/yellow]")
        elif result.shell_init_installed:
            console.print("[green]Shell integration updated.[/green] Add this line to your shell rc file if needed:")
            console.print(escape(manager.shell_snippet()), soft_wrap=True)
        if result.failed:
            _print_errors(result.errors)
            raise typer.Exit(code=EXIT_FAILURE)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def off(
    ctx: typer.Context,
    packs: list[str] = typer.Argument(None, help="Packs to remove (default: all)"),
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Show what would be removed"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Approve destructive steps such as Homebrew uninstalls"),
) -> None:
    """Remove the links and state a pack's deployment created."""

    try:
        manager = _load_manager(ctx, assume_yes=yes)
        result = manager.off(packs or None, dry_run=dry_run)
        if result.items or result.errors:
            _format_off_result(result, manager)
        else:
            console.print("[green]Nothing to remove.[/green]")
        if result.failed:
            _print_errors(result.errors)
            raise typer.Exit(code=EXIT_FAILURE)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def status(
    ctx: typer.Context,
    packs: list[str] = typer.Argument(None, help="Packs to inspect (default: all)"),
) -> None:
    """Show each pack file and its deployment state."""

    try:
        manager = _load_manager(ctx)
        report = manager.status(packs or None)
        _format_status(report)
        if any(entry.state is not StatusState.DEPLOYED for entry in report.entries):
            console.print("[yellow]Some entries are not deployed. Run 'dotpack on' to deploy them.[/yellow]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def init(
    ctx: typer.Context,
    pack: str = typer.Argument(..., help="Name of the pack to create"),
) -> None:
    """Create a new pack with a starter configuration."""

    try:
        manager = _load_manager(ctx)
        path = manager.init_pack(pack)
        console.print(f"[green]Created pack '{escape(pack)}' at '{escape(str(path))}'.[/green]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command("add-ignore")
def add_ignore(
    ctx: typer.Context,
    pack: str = typer.Argument(..., help="Pack directory to ignore"),
) -> None:
    """Exclude a directory under the dotfiles root from deployment."""

    try:
        manager = _load_manager(ctx)
        if manager.add_ignore(pack):
            console.print(f"[green]Pack '{escape(pack)}' is now ignored.[/green]")
        else:
            console.print(f"[yellow]Pack '{escape(pack)}' was already ignored.[/yellow]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def adopt(
    ctx: typer.Context,
    pack: str = typer.Argument(..., help="Pack to move the files into"),
    files: list[Path] = typer.Argument(..., help="Files under your home directory"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite files already in the pack"),
) -> None:
    """Move existing files into a pack and link them back."""

    try:
        manager = _load_manager(ctx)
        results = manager.adopt(pack, files, force=force)
        _format_operation_results(results)
        failures = [result.error for result in results if result.error is not None]
        if failures:
            _print_errors(failures)
            raise typer.Exit(code=EXIT_FAILURE)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def snippet(ctx: typer.Context) -> None:
    """Print the line that loads dotpack's shell integration."""

    try:
        manager = _load_manager(ctx)
        typer.echo(manager.shell_snippet())
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


def run() -> None:
    """Entry point used for console_script bindings."""

    app()
