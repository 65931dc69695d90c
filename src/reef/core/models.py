from __future__ import annotations

import enum
from dataclasses import dataclass, field


class LinkState(str, enum.Enum):
    LINKED = "linked"
    HEALABLE = "healable"
    BROKEN = "broken"
    UNLINKED_IN_TWIN = "unlinked"


class EntryKind(str, enum.Enum):
    FILE = "file"
    DIRECTORY = "directory"


class OutcomeStatus(str, enum.Enum):
    DONE = "done"
    SKIPPED = "skipped"
    CONFLICT = "conflict"
    FAILED = "failed"
    UNRESOLVED = "unresolved"


PROBLEM_STATUSES = (OutcomeStatus.CONFLICT, OutcomeStatus.FAILED, OutcomeStatus.UNRESOLVED)


@dataclass(frozen=True)
class WorkspacePair:
    """A project directory (BASE) and its twin, both canonical absolute paths.

    ``candidates`` holds every twin location consulted for this BASE, in
    priority order, existing ones in resolved form; ``twin_path`` is one of
    them.
    """

    base_path: str
    twin_path: str
    suffix: str
    candidates: tuple[str, ...] = ()

    def __post_init__(self):
        if not self.suffix:
            raise ValueError("suffix must not be empty")
        if self.base_path == self.twin_path:
            raise ValueError(f"base and twin are the same path: {self.base_path}")


@dataclass
class LinkEntry:
    """Classification of one path, derived from a single scan."""

    relative_path: str
    kind: EntryKind
    state: LinkState
    target: str | None = None  # Recorded symlink string, None for twin-only entries
    resolved: str | None = None  # Existing file backing the entry, None when broken


@dataclass
class EntryOutcome:
    """Result of one operation on one path."""

    path: str  # Relative to BASE
    status: OutcomeStatus
    message: str = ""


@dataclass
class BatchReport:
    """Aggregated outcomes of a batch operation (plug, unplug, heal)."""

    operation: str
    outcomes: list[EntryOutcome] = field(default_factory=list)

    def add(self, outcome: EntryOutcome) -> None:
        self.outcomes.append(outcome)

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for o in self.outcomes if o.status is status)

    @property
    def ok(self) -> bool:
        """Whether every entry either succeeded or needed nothing."""
        return not any(o.status in PROBLEM_STATUSES for o in self.outcomes)

    @property
    def summary(self) -> str:
        """e.g., '3 done, 1 skipped, 1 conflict'"""
        parts = []
        for status in OutcomeStatus:
            n = self.count(status)
            if n:
                parts.append(f"{n} {status.value}")
        return ", ".join(parts) if parts else "nothing to do"
