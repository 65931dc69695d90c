"""Move files between BASE and its twin, and manage the links between them.

``kick`` and ``recall`` act on a single path and fail fast. ``plug`` and
``unplug`` walk a whole tree, record an outcome per entry and keep going past
per-entry failures, so re-running them finishes interrupted work.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Callable

from reef.core.errors import (
    AlreadyLinkedError,
    ConflictError,
    NotFoundError,
    PartialFailureError,
    PermissionDeniedError,
    ReefError,
    UsageError,
)
from reef.core.integrity import (
    classify_link,
    iter_base_links,
    known_suffixes,
    relink,
    resolve_alternate_target,
    twin_roots,
)
from reef.core.models import (
    BatchReport,
    EntryKind,
    EntryOutcome,
    LinkState,
    OutcomeStatus,
    WorkspacePair,
)
from reef.core.paths import absolute_target, canonicalize, is_within, points_to

logger = logging.getLogger(__name__)

ConfirmFn = Callable[[str], bool]


def resolve_relative(pair: WorkspacePair, raw: str) -> str:
    """Turn user input into a clean path relative to BASE.

    Relative input is taken as relative to BASE (equivalently, to TWIN).
    Absolute input must lie under BASE or TWIN.
    """
    if not raw:
        raise UsageError(reason="empty path")
    if os.path.isabs(raw):
        # trailing separators would make dirname() return the entry itself
        clean = os.path.normpath(raw)
        parent = canonicalize(os.path.dirname(clean))
        full = os.path.join(parent, os.path.basename(clean))
        for root in (pair.base_path, pair.twin_path):
            if is_within(full, root):
                rel = os.path.relpath(full, root)
                break
        else:
            raise UsageError(raw, "not inside the project or its twin")
    else:
        rel = os.path.normpath(raw)
    if rel == "." or rel == ".." or rel.startswith(".." + os.sep):
        raise UsageError(raw, "must name an entry inside the project")
    return rel


def _kind(path: str) -> EntryKind:
    return EntryKind.DIRECTORY if os.path.isdir(path) else EntryKind.FILE


class LinkManager:
    """Kick, recall, plug and unplug for one resolved WorkspacePair.

    *confirm* is asked before a missing twin directory is created; without it,
    creating the twin is refused.
    """

    def __init__(self, pair: WorkspacePair, confirm: ConfirmFn | None = None):
        self.pair = pair
        self.confirm = confirm

    @property
    def base(self) -> str:
        return self.pair.base_path

    @property
    def twin(self) -> str:
        return self.pair.twin_path

    def _roots(self) -> tuple[str, ...]:
        return twin_roots(self.pair)

    # -- single-item operations ------------------------------------------

    def kick(self, relative_path: str) -> EntryOutcome:
        """Move BASE/relative_path into the twin and leave a symlink behind."""
        rel = resolve_relative(self.pair, relative_path)
        source = os.path.join(self.base, rel)
        dest = os.path.join(self.twin, rel)

        if not os.path.lexists(source):
            raise NotFoundError(source)
        if os.path.islink(source):
            target = absolute_target(source, os.readlink(source))
            if any(is_within(target, r) for r in self._roots()):
                raise AlreadyLinkedError(source)

        self._ensure_twin()
        if os.path.lexists(dest):
            raise ConflictError(dest, "already exists in twin")

        kind = _kind(source)
        try:
            os.makedirs(os.path.dirname(dest), exist_ok=True)
            shutil.move(source, dest)
        except PermissionError as e:
            raise PermissionDeniedError(source, str(e)) from e
        except OSError as e:
            raise ReefError(source, f"move failed: {e}") from e
        logger.info("moved %s -> %s", source, dest)

        try:
            os.symlink(dest, source)
        except OSError as e:
            logger.warning("linking %s failed, moving it back", source)
            try:
                shutil.move(dest, source)
            except OSError as rollback_error:
                raise PartialFailureError(source, e, rollback_error) from e
            raise PartialFailureError(source, e) from e

        return EntryOutcome(rel, OutcomeStatus.DONE, f"{kind.value} kicked to {dest}")

    def _ensure_twin(self) -> None:
        if os.path.isdir(self.twin):
            return
        prompt = f"Twin directory {self.twin} does not exist. Create it?"
        if self.confirm is None or not self.confirm(prompt):
            raise UsageError(self.twin, "twin directory missing and creation was declined")
        try:
            os.makedirs(self.twin)
        except PermissionError as e:
            raise PermissionDeniedError(self.twin, str(e)) from e
        logger.info("created twin %s", self.twin)

    def recall(self, relative_path: str) -> EntryOutcome:
        """Bring a kicked file back into BASE, replacing its symlink."""
        rel = resolve_relative(self.pair, relative_path)
        link = os.path.join(self.base, rel)

        if not os.path.islink(link):
            if os.path.lexists(link):
                raise NotFoundError(link, "not a symlink into the twin")
            raise NotFoundError(link)

        recorded = os.readlink(link)
        target = absolute_target(link, recorded)
        if os.path.exists(target):
            resolved = os.path.realpath(target)
            if not any(
                is_within(resolved, r) or is_within(target, r) for r in self._roots()
            ):
                raise NotFoundError(link, f"points outside the twin ({recorded})")
            real = target
        else:
            real = resolve_alternate_target(
                recorded, self._roots(), known_suffixes(self.pair)
            )
            if real is None:
                raise NotFoundError(link, f"target {recorded} not found in any twin location")
            logger.info("recalling %s from alternate location %s", rel, real)

        kind = _kind(real)
        try:
            os.unlink(link)
        except PermissionError as e:
            raise PermissionDeniedError(link, str(e)) from e
        try:
            shutil.move(real, link)
        except OSError as e:
            try:
                os.symlink(recorded, link)
            except OSError:
                logger.warning("could not restore link %s -> %s", link, recorded)
            if isinstance(e, PermissionError):
                raise PermissionDeniedError(real, str(e)) from e
            raise ReefError(real, f"move failed: {e}") from e
        logger.info("moved %s -> %s", real, link)

        self._prune_empty_parents(
            os.path.join(os.path.realpath(os.path.dirname(real)), os.path.basename(real))
        )
        return EntryOutcome(rel, OutcomeStatus.DONE, f"{kind.value} recalled from {real}")

    def _prune_empty_parents(self, moved_from: str) -> None:
        root = next((r for r in self._roots() if is_within(moved_from, r)), None)
        if root is None:
            return
        current = os.path.dirname(moved_from)
        while current != root and is_within(current, root):
            try:
                os.rmdir(current)
            except OSError:
                # not empty
                break
            logger.debug("removed empty twin directory %s", current)
            current = os.path.dirname(current)

    # -- batch operations ------------------------------------------------

    def plug(self) -> BatchReport:
        """Ensure every twin entry has a matching symlink in BASE."""
        if not os.path.isdir(self.twin):
            raise NotFoundError(self.twin, "twin directory does not exist")
        report = BatchReport("plug")
        for dirpath, dirnames, filenames in os.walk(self.twin):
            rel_dir = os.path.relpath(dirpath, self.twin)
            entered = []
            for name in sorted(dirnames):
                rel = os.path.normpath(os.path.join(rel_dir, name))
                outcome = self._plug_entry(rel, is_dir=True)
                if outcome is None:
                    entered.append(name)
                else:
                    report.add(outcome)
            dirnames[:] = entered
            for name in sorted(filenames):
                rel = os.path.normpath(os.path.join(rel_dir, name))
                report.add(self._plug_entry(rel, is_dir=False))
        return report

    def _plug_entry(self, rel: str, is_dir: bool) -> EntryOutcome | None:
        """Link one twin entry. None means: descend into this directory."""
        link = os.path.join(self.base, rel)
        target = os.path.join(self.twin, rel)
        try:
            if os.path.islink(link):
                if points_to(link, target):
                    return EntryOutcome(rel, OutcomeStatus.SKIPPED, "already linked")
                recorded = os.readlink(link)
                if not os.path.exists(link):
                    alternate = resolve_alternate_target(
                        recorded, self._roots(), known_suffixes(self.pair)
                    )
                    if alternate is not None and points_to(alternate, target):
                        relink(link, target, recorded)
                        return EntryOutcome(rel, OutcomeStatus.DONE, "relinked")
                return EntryOutcome(rel, OutcomeStatus.CONFLICT, f"symlink points to {recorded}")
            if os.path.lexists(link):
                if is_dir and os.path.isdir(link) and not os.path.islink(target):
                    return None
                return EntryOutcome(rel, OutcomeStatus.CONFLICT, ConflictError.default_reason)
            os.symlink(target, link)
        except OSError as e:
            return EntryOutcome(rel, OutcomeStatus.FAILED, str(e))
        logger.info("linked %s -> %s", link, target)
        return EntryOutcome(rel, OutcomeStatus.DONE, "linked")

    def unplug(self) -> BatchReport:
        """Remove every BASE symlink that leads into the twin.

        The twin's files stay where they are; links to anything else stay too.
        """
        report = BatchReport("unplug")
        for link in iter_base_links(self.pair):
            rel = os.path.relpath(link, self.base)
            try:
                entry = classify_link(link, self.pair)
                if entry is None:
                    continue
                if entry.state is LinkState.BROKEN:
                    report.add(
                        EntryOutcome(rel, OutcomeStatus.SKIPPED, "target not found in any twin location")
                    )
                    continue
                os.unlink(link)
            except OSError as e:
                report.add(EntryOutcome(rel, OutcomeStatus.FAILED, str(e)))
                continue
            logger.info("unlinked %s", link)
            report.add(EntryOutcome(rel, OutcomeStatus.DONE, "unlinked"))
        return report
