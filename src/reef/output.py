"""Render reports and status tables to the terminal."""

from __future__ import annotations

from dataclasses import dataclass

import orjson
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from reef.core.models import (
    BatchReport,
    EntryOutcome,
    LinkEntry,
    LinkState,
    OutcomeStatus,
    WorkspacePair,
)

QUIET = 0
NORMAL = 1
VERBOSE = 2


@dataclass(frozen=True)
class OutputOptions:
    color: bool = True
    icons: bool = True
    verbosity: int = NORMAL


# (icon, ascii tag, style)
_STATUS_MARKS = {
    OutcomeStatus.DONE: ("✓", "[ok]", "green"),
    OutcomeStatus.SKIPPED: ("·", "[skip]", "dim"),
    OutcomeStatus.CONFLICT: ("⚠", "[conflict]", "yellow"),
    OutcomeStatus.FAILED: ("✗", "[fail]", "red"),
    OutcomeStatus.UNRESOLVED: ("✗", "[broken]", "red"),
}

_STATE_MARKS = {
    LinkState.LINKED: ("🔗", "[linked]", "green"),
    LinkState.HEALABLE: ("🩹", "[healable]", "yellow"),
    LinkState.BROKEN: ("💔", "[broken]", "red"),
    LinkState.UNLINKED_IN_TWIN: ("📦", "[unlinked]", "cyan"),
}


def make_console(options: OutputOptions, stderr: bool = False) -> Console:
    return Console(
        stderr=stderr,
        no_color=not options.color,
        highlight=False,
        soft_wrap=True,
    )


def entries_to_json(entries: list[LinkEntry]) -> bytes:
    """Serialize status entries; enums are written as their values."""
    return orjson.dumps(entries, option=orjson.OPT_INDENT_2)


class ReportPrinter:
    """Writes operation results using fixed presentation options."""

    def __init__(self, console: Console, options: OutputOptions):
        self.console = console
        self.options = options

    def _mark(self, icon: str, tag: str, style: str) -> str:
        text = icon if self.options.icons else escape(tag)
        if self.options.color:
            return f"[{style}]{text}[/{style}]"
        return text

    def outcome(self, outcome: EntryOutcome) -> None:
        if self.options.verbosity == QUIET and outcome.status is OutcomeStatus.DONE:
            return
        if self.options.verbosity < VERBOSE and outcome.status is OutcomeStatus.SKIPPED:
            return
        mark = self._mark(*_STATUS_MARKS[outcome.status])
        line = f"{mark} {escape(outcome.path)}"
        if outcome.message:
            line += f": {escape(outcome.message)}"
        self.console.print(line)

    def batch(self, report: BatchReport) -> None:
        for outcome in report.outcomes:
            self.outcome(outcome)
        if self.options.verbosity == QUIET and report.ok:
            return
        style = "green" if report.ok else "red"
        summary = f"{report.operation}: {report.summary}"
        if self.options.color:
            summary = f"[bold {style}]{escape(summary)}[/bold {style}]"
        else:
            summary = escape(summary)
        self.console.print(summary)

    def status(self, pair: WorkspacePair, entries: list[LinkEntry], twin_exists: bool) -> None:
        twin_note = "" if twin_exists else " (not created)"
        self.console.print(f"base: {escape(pair.base_path)}")
        self.console.print(f"twin: {escape(pair.twin_path)}{twin_note}")
        if not entries:
            self.console.print("No linked or twin entries.")
            return

        table = Table(title=f"Twin entries ({len(entries)})", show_lines=False)
        table.add_column("State", no_wrap=True)
        table.add_column("Kind", style="dim" if self.options.color else None)
        table.add_column("Path")
        if self.options.verbosity >= VERBOSE:
            table.add_column("Target")

        for entry in entries:
            icon, tag, style = _STATE_MARKS[entry.state]
            label = f"{icon} {entry.state.value}" if self.options.icons else tag
            if self.options.color:
                label = f"[{style}]{escape(label)}[/{style}]"
            else:
                label = escape(label)
            row = [label, entry.kind.value, escape(entry.relative_path)]
            if self.options.verbosity >= VERBOSE:
                row.append(escape(entry.resolved or entry.target or ""))
            table.add_row(*row)
        self.console.print(table)

        counts = {state: 0 for state in LinkState}
        for entry in entries:
            counts[entry.state] += 1
        self.console.print(
            ", ".join(f"{n} {state.value}" for state, n in counts.items() if n)
        )
        if counts[LinkState.HEALABLE]:
            self.console.print("Run 'reef heal' to repair healable links.")

    def error(self, message: str) -> None:
        if self.options.color:
            self.console.print(f"[red]error:[/red] {escape(message)}")
        else:
            self.console.print(f"error: {escape(message)}")
