from reef.core.errors import ReefError, UsageError
from reef.core.integrity import heal, resolve_alternate_target, scan
from reef.core.links import LinkManager
from reef.core.locator import DEFAULT_SUFFIX, detect
from reef.core.models import LinkEntry, LinkState, WorkspacePair
from reef.core.paths import canonicalize

__all__ = [
    "DEFAULT_SUFFIX",
    "LinkEntry",
    "LinkManager",
    "LinkState",
    "ReefError",
    "UsageError",
    "WorkspacePair",
    "canonicalize",
    "detect",
    "heal",
    "resolve_alternate_target",
    "scan",
]
