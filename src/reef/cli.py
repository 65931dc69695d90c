from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, replace
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import NoReturn

import typer
from rich.logging import RichHandler

from reef.config import Settings, load_settings
from reef.core.errors import ReefError, UsageError
from reef.core.filters import EntryFilter, SearchMode
from reef.core.integrity import heal, scan
from reef.core.links import LinkManager
from reef.core.locator import detect
from reef.core.models import WorkspacePair
from reef.output import (
    NORMAL,
    QUIET,
    VERBOSE,
    OutputOptions,
    ReportPrinter,
    entries_to_json,
    make_console,
)

EXIT_OPERATION_ERROR = 1
EXIT_USAGE_ERROR = 2

logger = logging.getLogger("reef")


def _version_callback(value: bool) -> None:
    if value:
        try:
            print(f"reef {version('reef')}")
        except PackageNotFoundError:
            print("reef (not installed)")
        raise typer.Exit()


app = typer.Typer(
    name="reef",
    help="Move project files into a twin directory and keep symlinks to them.",
    no_args_is_help=True,
)


@dataclass
class CliState:
    """Resolved global options, shared with every subcommand via ctx.obj."""

    cwd: Path
    settings: Settings
    options: OutputOptions
    assume_yes: bool

    @property
    def printer(self) -> ReportPrinter:
        return ReportPrinter(make_console(self.options), self.options)

    @property
    def error_printer(self) -> ReportPrinter:
        return ReportPrinter(make_console(self.options, stderr=True), self.options)


def _configure_logging(options: OutputOptions) -> None:
    level = {QUIET: logging.ERROR, NORMAL: logging.WARNING, VERBOSE: logging.DEBUG}[
        options.verbosity
    ]
    logger.handlers.clear()
    handler = RichHandler(
        console=make_console(options, stderr=True),
        show_time=False,
        show_path=False,
    )
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False


def _fail(state: CliState, err: ReefError) -> NoReturn:
    state.error_printer.error(str(err))
    if isinstance(err, UsageError):
        raise typer.Exit(code=EXIT_USAGE_ERROR)
    raise typer.Exit(code=EXIT_OPERATION_ERROR)


def _resolve_pair(state: CliState) -> WorkspacePair:
    try:
        return detect(state.cwd, state.settings.suffix)
    except ReefError as e:
        _fail(state, e)


def _make_confirm(assume_yes: bool):
    if assume_yes:
        return lambda prompt: True

    def confirm(prompt: str) -> bool:
        try:
            return typer.confirm(prompt, default=False)
        except typer.Abort:
            return False

    return confirm


@app.callback()
def main(
    ctx: typer.Context,
    suffix: str = typer.Option(
        None,
        "--suffix",
        "-s",
        help="Suffix naming the twin directory (default: config file, REEF_SUFFIX, or '-reef')",
    ),
    directory: Path = typer.Option(
        None,
        "--cwd",
        "-C",
        help="Run as if started in this directory",
    ),
    config_file: Path = typer.Option(
        None,
        "--config",
        help="Path to the YAML preferences file",
    ),
    assume_yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        is_flag=True,
        help="Create the twin directory without asking",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", is_flag=True, help="Show skipped entries and debug logging"
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", is_flag=True, help="Only report problems"
    ),
    no_color: bool = typer.Option(False, "--no-color", is_flag=True, help="Disable colors"),
    no_icons: bool = typer.Option(
        False, "--no-icons", is_flag=True, help="Use plain text tags instead of icons"
    ),
    version_flag: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
        is_eager=True,
        callback=_version_callback,
        is_flag=True,
    ),
):
    """Move project files into a twin directory and keep symlinks to them."""
    if verbose and quiet:
        raise typer.BadParameter("--verbose and --quiet are mutually exclusive")
    try:
        settings = load_settings(config_file)
    except ReefError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=EXIT_USAGE_ERROR)
    if suffix is not None:
        settings = replace(settings, suffix=suffix)

    options = OutputOptions(
        color=settings.color and not no_color,
        icons=settings.icons and not no_icons,
        verbosity=VERBOSE if verbose else (QUIET if quiet else NORMAL),
    )
    _configure_logging(options)
    ctx.obj = CliState(
        cwd=directory if directory is not None else Path.cwd(),
        settings=settings,
        options=options,
        assume_yes=assume_yes,
    )


@app.command("status")
def status_command(
    ctx: typer.Context,
    filter_pattern: str = typer.Option(
        "",
        "--filter",
        "-f",
        help="Pattern to filter paths (e.g. '*.env' for glob, 'cfg' for fuzzy, '\\.env$' for regex)",
    ),
    mode: SearchMode = typer.Option(
        SearchMode.GLOB,
        "--mode",
        "-m",
        help="Filter mode: glob (default), regex, or fuzzy",
    ),
    as_json: bool = typer.Option(False, "--json", is_flag=True, help="Output entries as JSON"),
):
    """Show every linked, healable, broken and unlinked twin entry."""
    state: CliState = ctx.obj
    try:
        entry_filter = EntryFilter(filter_pattern, mode)
    except UsageError as e:
        _fail(state, e)

    pair = _resolve_pair(state)
    try:
        entries = scan(pair)
    except OSError as e:
        _fail(state, ReefError(pair.base_path, str(e)))
    entries = entry_filter.apply(entries)

    if as_json:
        sys.stdout.write(entries_to_json(entries).decode("utf-8") + "\n")
        return
    state.printer.status(pair, entries, os.path.isdir(pair.twin_path))


@app.command("kick")
def kick_command(
    ctx: typer.Context,
    paths: list[str] = typer.Argument(..., help="Files or directories to move into the twin"),
):
    """Move files into the twin and leave symlinks in their place."""
    state: CliState = ctx.obj
    pair = _resolve_pair(state)
    manager = LinkManager(pair, confirm=_make_confirm(state.assume_yes))
    printer = state.printer
    for path in paths:
        try:
            printer.outcome(manager.kick(path))
        except ReefError as e:
            _fail(state, e)


@app.command("recall")
def recall_command(
    ctx: typer.Context,
    paths: list[str] = typer.Argument(..., help="Linked files or directories to bring back"),
):
    """Move files back from the twin, replacing their symlinks."""
    state: CliState = ctx.obj
    pair = _resolve_pair(state)
    manager = LinkManager(pair)
    printer = state.printer
    for path in paths:
        try:
            printer.outcome(manager.recall(path))
        except ReefError as e:
            _fail(state, e)


def _run_batch(state: CliState, run) -> None:
    try:
        report = run()
    except ReefError as e:
        _fail(state, e)
    state.printer.batch(report)
    if not report.ok:
        raise typer.Exit(code=EXIT_OPERATION_ERROR)


@app.command("plug")
def plug_command(ctx: typer.Context):
    """Create symlinks in the project for every twin entry."""
    state: CliState = ctx.obj
    pair = _resolve_pair(state)
    _run_batch(state, LinkManager(pair).plug)


@app.command("unplug")
def unplug_command(ctx: typer.Context):
    """Remove the project's symlinks into the twin, keeping the twin's files."""
    state: CliState = ctx.obj
    pair = _resolve_pair(state)
    _run_batch(state, LinkManager(pair).unplug)


@app.command("heal")
def heal_command(
    ctx: typer.Context,
    dry_run: bool = typer.Option(
        False, "--dry-run", "-n", is_flag=True, help="Report what would be relinked"
    ),
):
    """Repoint links whose twin moved between the sibling and central locations."""
    state: CliState = ctx.obj
    pair = _resolve_pair(state)
    _run_batch(state, lambda: heal(pair, dry_run=dry_run))
