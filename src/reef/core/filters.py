"""Narrow ``reef status`` output to entries whose path matches a pattern."""

from __future__ import annotations

import enum
import fnmatch
import re
from dataclasses import dataclass, field

from textual.fuzzy import Matcher

from reef.core.errors import UsageError
from reef.core.models import LinkEntry


class SearchMode(str, enum.Enum):
    GLOB = "glob"
    REGEX = "regex"
    FUZZY = "fuzzy"


@dataclass(frozen=True)
class EntryFilter:
    """A compiled status filter.

    Matching is smart-case unless *case_sensitive* is given: a pattern with an
    uppercase letter matches case-sensitively. Glob patterns are tried against
    both the relative path and its last component, so ``*.env`` finds nested
    files. Regex patterns are searched, not anchored.

    Raises:
        UsageError: If a regex pattern does not compile.
    """

    pattern: str
    mode: SearchMode = SearchMode.GLOB
    case_sensitive: bool | None = None
    _regex: re.Pattern | None = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        if self.mode is SearchMode.REGEX and self.pattern:
            flags = 0 if self.sensitive else re.IGNORECASE
            try:
                object.__setattr__(self, "_regex", re.compile(self.pattern, flags))
            except re.error as e:
                raise UsageError(self.pattern, f"invalid regex: {e}") from e

    @property
    def sensitive(self) -> bool:
        if self.case_sensitive is not None:
            return self.case_sensitive
        return any(c.isupper() for c in self.pattern)

    def score(self, entry: LinkEntry) -> float:
        """Relevance of *entry*: 0.0 for no match, 1.0 for glob/regex hits."""
        path = entry.relative_path.replace("\\", "/")
        if not self.pattern:
            return 1.0
        if self.mode is SearchMode.FUZZY:
            return Matcher(self.pattern, case_sensitive=self.sensitive).match(path)
        if self.mode is SearchMode.REGEX:
            return 1.0 if self._regex.search(path) else 0.0

        pattern = self.pattern if self.sensitive else self.pattern.lower()
        if not self.sensitive:
            path = path.lower()
        name = path.rsplit("/", 1)[-1]
        hit = fnmatch.fnmatchcase(path, pattern) or fnmatch.fnmatchcase(name, pattern)
        return 1.0 if hit else 0.0

    def apply(self, entries: list[LinkEntry]) -> list[LinkEntry]:
        """Matching entries; fuzzy results are ordered best first."""
        if not self.pattern:
            return entries
        scored = [(self.score(e), e) for e in entries]
        kept = [(s, e) for s, e in scored if s > 0]
        if self.mode is SearchMode.FUZZY:
            # stable sort keeps scan order among equal scores
            kept.sort(key=lambda item: item[0], reverse=True)
        return [e for _, e in kept]
