"""Work out which directory is BASE and which is its twin."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from reef.core.errors import AmbiguousTwinError, UsageError
from reef.core.models import WorkspacePair
from reef.core.paths import canonicalize

logger = logging.getLogger(__name__)

DEFAULT_SUFFIX = "-reef"
STORE_DIRNAME = ".reef"


def store_root(home: str | os.PathLike | None = None) -> str:
    """Directory holding centralized twins, ``<home>/.reef``."""
    home = os.fspath(home) if home is not None else str(Path.home())
    return os.path.join(canonicalize(home), STORE_DIRNAME)


def twin_candidates(
    base: str, suffix: str, home: str | os.PathLike | None = None
) -> tuple[str, str]:
    """Twin locations for *base* in priority order: sibling, then central store."""
    parent, name = os.path.split(base)
    return (
        os.path.join(parent, name + suffix),
        os.path.join(store_root(home), name + suffix),
    )


def detect(
    cwd: str | os.PathLike, suffix: str, home: str | os.PathLike | None = None
) -> WorkspacePair:
    """Resolve the (BASE, TWIN) pair for a working directory.

    Running from BASE or from a sibling TWIN yields the same pair. When no twin
    exists yet, the sibling location is returned as the creation target.

    Raises:
        UsageError: If *suffix* is empty.
        AmbiguousTwinError: If BASE and TWIN would be the same directory, or
            *cwd* is a centralized twin whose BASE cannot be inferred.
    """
    if not suffix:
        raise UsageError(reason="twin suffix must not be empty")

    cwd = canonicalize(cwd)
    parent, name = os.path.split(cwd)

    if name.endswith(suffix) and len(name) > len(suffix):
        stripped = os.path.join(parent, name[: -len(suffix)])
        if os.path.isdir(stripped):
            logger.debug("%s is a sibling twin of %s", cwd, stripped)
            return _make_pair(canonicalize(stripped), cwd, suffix, home)
        if parent == store_root(home):
            raise AmbiguousTwinError(
                cwd, "centralized twin does not record its project; run from the project"
            )

    candidates = twin_candidates(cwd, suffix, home)
    twin = next((c for c in candidates if os.path.isdir(c)), None)
    if twin is None:
        twin = candidates[0]
        logger.debug("no twin found for %s; default is %s", cwd, twin)
    else:
        twin = canonicalize(twin)
        logger.debug("twin for %s is %s", cwd, twin)
    return _make_pair(cwd, twin, suffix, home)


def _make_pair(base: str, twin: str, suffix: str, home) -> WorkspacePair:
    if base == twin:
        raise AmbiguousTwinError(base)
    # existing locations are stored resolved so they compare equal to twin
    candidates = tuple(
        canonicalize(c) if os.path.isdir(c) else c
        for c in twin_candidates(base, suffix, home)
    )
    return WorkspacePair(
        base_path=base,
        twin_path=twin,
        suffix=suffix,
        candidates=candidates,
    )
