"""Classify symlinks under BASE and repair ones whose twin moved.

A twin can live beside its project or in the centralized store. Links created
against one location break when the twin is moved to the other; the part of
the recorded target below the twin directory still names the file, so it can
be looked up again under every known twin location.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterator, Sequence

from reef.core.errors import BrokenLinkUnresolvableError
from reef.core.locator import DEFAULT_SUFFIX
from reef.core.models import (
    BatchReport,
    EntryKind,
    EntryOutcome,
    LinkEntry,
    LinkState,
    OutcomeStatus,
    WorkspacePair,
)
from reef.core.paths import absolute_target, is_within

logger = logging.getLogger(__name__)

ExistsFn = Callable[[str], bool]


def _twin_component_index(
    parts: Sequence[str], root_names: set[str], suffixes: Sequence[str]
) -> int | None:
    """Index of the path component naming a twin directory, or None."""
    for i in range(len(parts) - 1, -1, -1):
        if parts[i] in root_names:
            return i
    for i in range(len(parts) - 1, -1, -1):
        if any(s and parts[i].endswith(s) and len(parts[i]) > len(s) for s in suffixes):
            return i
    return None


def twin_relative_path(
    recorded: str, roots: Sequence[str], suffixes: Sequence[str]
) -> str | None:
    """Path of *recorded* below its twin directory component, or None.

    The right-most component equal to a root's basename wins; failing that,
    the right-most component ending with one of *suffixes*. Two projects with
    the same basename are indistinguishable here.
    """
    parts = [p for p in recorded.replace(os.sep, "/").split("/") if p and p != "."]
    root_names = {os.path.basename(os.path.normpath(r)) for r in roots}
    idx = _twin_component_index(parts, root_names, suffixes)
    if idx is None or idx == len(parts) - 1:
        return None
    rest = parts[idx + 1 :]
    if ".." in rest:
        return None
    return os.path.join(*rest)


def resolve_alternate_target(
    recorded: str,
    roots: Sequence[str],
    suffixes: Sequence[str] = (DEFAULT_SUFFIX,),
    exists: ExistsFn = os.path.exists,
) -> str | None:
    """Find where a link's file lives now, given its recorded target string.

    Pure apart from the *exists* predicate: no state, no filesystem writes.
    Returns the first ``root/<relative>`` for which *exists* is true.
    """
    relative = twin_relative_path(recorded, roots, suffixes)
    if relative is None:
        return None
    for root in roots:
        candidate = os.path.join(root, relative)
        if exists(candidate):
            return candidate
    return None


def twin_roots(pair: WorkspacePair) -> tuple[str, ...]:
    """Every twin location of *pair*, the active twin first."""
    return (pair.twin_path,) + tuple(c for c in pair.candidates if c != pair.twin_path)


def known_suffixes(pair: WorkspacePair) -> tuple[str, ...]:
    if pair.suffix == DEFAULT_SUFFIX:
        return (pair.suffix,)
    return (pair.suffix, DEFAULT_SUFFIX)


def _kind_of(path: str | None) -> EntryKind:
    if path is not None and os.path.isdir(path):
        return EntryKind.DIRECTORY
    return EntryKind.FILE


def classify_link(
    link_path: str, pair: WorkspacePair, exists: ExistsFn = os.path.exists
) -> LinkEntry | None:
    """Classify the symlink at *link_path*.

    A link whose target exists under any twin location is LINKED, so links
    healed into the inactive location stay accounted for. Returns None for
    links that have nothing to do with the twin (existing targets elsewhere,
    or missing targets without a twin component).
    """
    recorded = os.readlink(link_path)
    target = absolute_target(link_path, recorded)
    relative = os.path.relpath(link_path, pair.base_path)
    roots = twin_roots(pair)

    if exists(target):
        resolved = os.path.realpath(target)
        if any(is_within(resolved, r) or is_within(target, r) for r in roots):
            return LinkEntry(relative, _kind_of(target), LinkState.LINKED, recorded, target)
        return None

    alternate = resolve_alternate_target(recorded, roots, known_suffixes(pair), exists)
    if alternate is not None:
        return LinkEntry(relative, _kind_of(alternate), LinkState.HEALABLE, recorded, alternate)
    if twin_relative_path(recorded, roots, known_suffixes(pair)) is not None:
        return LinkEntry(relative, EntryKind.FILE, LinkState.BROKEN, recorded, None)
    return None


def iter_base_links(pair: WorkspacePair) -> Iterator[str]:
    """Yield every symlink under BASE in sorted order.

    Symlinked directories are reported but not entered; twin locations that
    happen to sit inside BASE are skipped.
    """
    skip = set(twin_roots(pair))
    for dirpath, dirnames, filenames in os.walk(pair.base_path):
        dirnames.sort()
        entered = []
        for name in dirnames:
            path = os.path.join(dirpath, name)
            if os.path.islink(path):
                yield path
            elif path not in skip:
                entered.append(name)
        dirnames[:] = entered
        for name in sorted(filenames):
            path = os.path.join(dirpath, name)
            if os.path.islink(path):
                yield path


def iter_unlinked_in_twin(pair: WorkspacePair) -> Iterator[LinkEntry]:
    """Yield twin entries that have no symlink at the matching BASE path.

    Walks like ``plug``: a twin directory whose BASE counterpart is a real
    directory is descended into; one whose counterpart is missing is reported
    as a single entry.
    """
    twin = pair.twin_path
    if not os.path.isdir(twin):
        return
    for dirpath, dirnames, filenames in os.walk(twin):
        dirnames.sort()
        rel_dir = os.path.relpath(dirpath, twin)
        entered = []
        for name in dirnames:
            rel = os.path.normpath(os.path.join(rel_dir, name))
            base_path = os.path.join(pair.base_path, rel)
            twin_entry = os.path.join(dirpath, name)
            if os.path.isdir(base_path) and not os.path.islink(base_path):
                if not os.path.islink(twin_entry):
                    entered.append(name)
                    continue
            if not os.path.islink(base_path):
                yield LinkEntry(rel, EntryKind.DIRECTORY, LinkState.UNLINKED_IN_TWIN, None, twin_entry)
        dirnames[:] = entered
        for name in sorted(filenames):
            rel = os.path.normpath(os.path.join(rel_dir, name))
            base_path = os.path.join(pair.base_path, rel)
            twin_entry = os.path.join(dirpath, name)
            if not os.path.islink(base_path):
                yield LinkEntry(rel, EntryKind.FILE, LinkState.UNLINKED_IN_TWIN, None, twin_entry)


def scan(pair: WorkspacePair, exists: ExistsFn = os.path.exists) -> list[LinkEntry]:
    """Full-tree status: every twin-related BASE link plus unlinked twin entries."""
    entries: list[LinkEntry] = []
    for link_path in iter_base_links(pair):
        entry = classify_link(link_path, pair, exists)
        if entry is not None:
            entries.append(entry)
    entries.extend(iter_unlinked_in_twin(pair))
    entries.sort(key=lambda e: e.relative_path)
    logger.debug("scanned %s: %d entries", pair.base_path, len(entries))
    return entries


def heal(pair: WorkspacePair, dry_run: bool = False) -> BatchReport:
    """Repoint every HEALABLE link at the twin location its file lives in now.

    LINKED links are left alone; BROKEN ones are reported as unresolved.
    """
    report = BatchReport("heal")
    for link_path in iter_base_links(pair):
        try:
            entry = classify_link(link_path, pair)
        except OSError as e:
            rel = os.path.relpath(link_path, pair.base_path)
            report.add(EntryOutcome(rel, OutcomeStatus.FAILED, str(e)))
            continue
        if entry is None or entry.state is LinkState.LINKED:
            continue
        if entry.state is LinkState.BROKEN:
            err = BrokenLinkUnresolvableError(entry.relative_path)
            report.add(EntryOutcome(entry.relative_path, OutcomeStatus.UNRESOLVED, err.reason))
            continue
        report.add(_heal_one(link_path, entry, dry_run))
    return report


def _heal_one(link_path: str, entry: LinkEntry, dry_run: bool) -> EntryOutcome:
    rel = entry.relative_path
    new_target = entry.resolved
    if dry_run:
        return EntryOutcome(rel, OutcomeStatus.DONE, f"would relink to {new_target}")
    if not os.path.exists(new_target):
        # Gone since the scan
        return EntryOutcome(rel, OutcomeStatus.UNRESOLVED, f"{new_target} disappeared")
    try:
        relink(link_path, new_target, entry.target)
    except OSError as e:
        return EntryOutcome(rel, OutcomeStatus.FAILED, str(e))
    logger.info("healed %s -> %s", rel, new_target)
    return EntryOutcome(rel, OutcomeStatus.DONE, f"relinked to {new_target}")


def relink(link_path: str, new_target: str, old_recorded: str) -> None:
    """Replace the symlink at *link_path*, restoring the old one on failure."""
    os.unlink(link_path)
    try:
        os.symlink(new_target, link_path)
    except OSError:
        try:
            os.symlink(old_recorded, link_path)
        except OSError:
            logger.warning("could not restore link %s -> %s", link_path, old_recorded)
        raise
