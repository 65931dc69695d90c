"""Path canonicalization that works for paths that do not exist yet."""

from __future__ import annotations

import os

from reef.core.errors import NotFoundError


def canonicalize(path: str | os.PathLike) -> str:
    """Return the absolute, symlink-free form of *path*.

    ``.`` and ``..`` are normalized and every symlink in the existing part of
    the path is resolved. A leaf that does not exist yet is appended as-is, so
    the result has the same shape whether or not the target exists.

    Raises:
        NotFoundError: If the parent of the leaf is not an existing directory.
    """
    absolute = os.path.abspath(os.fspath(path))
    parent, leaf = os.path.split(absolute)
    if not leaf:
        # filesystem root
        return os.path.realpath(absolute)
    if not os.path.isdir(parent):
        raise NotFoundError(parent, "parent directory does not exist")
    if os.path.lexists(absolute):
        return os.path.realpath(absolute)
    return os.path.join(os.path.realpath(parent), leaf)


def is_within(path: str, root: str) -> bool:
    """True if *path* is *root* or lies below it (compared by component)."""
    path = os.path.normpath(path)
    root = os.path.normpath(root)
    if path == root:
        return True
    prefix = root if root.endswith(os.sep) else root + os.sep
    return path.startswith(prefix)


def absolute_target(link_path: str, recorded: str) -> str:
    """Make a recorded symlink target absolute against the link's directory.

    The result is normalized lexically; symlinks in it are not resolved.
    """
    if not os.path.isabs(recorded):
        recorded = os.path.join(os.path.dirname(link_path), recorded)
    return os.path.normpath(recorded)


def points_to(link_path: str, target: str) -> bool:
    """True if *link_path* resolves to the same file as *target*."""
    return os.path.realpath(link_path) == os.path.realpath(target)
