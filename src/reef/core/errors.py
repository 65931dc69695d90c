"""Error kinds raised by reef operations.

Every error names the affected path and a short reason so the CLI can print
it verbatim.
"""

from __future__ import annotations


class ReefError(Exception):
    """Base class for all reef failures."""

    default_reason = "operation failed"

    def __init__(self, path: str | None = None, reason: str | None = None):
        self.path = path
        self.reason = reason or self.default_reason
        super().__init__(self.__str__())

    def __str__(self) -> str:
        if self.path:
            return f"{self.path}: {self.reason}"
        return self.reason


class UsageError(ReefError):
    """Bad input or a refused prompt. Maps to exit code 2."""

    default_reason = "invalid usage"


class NotFoundError(ReefError):
    default_reason = "no such file or directory"


class AlreadyLinkedError(ReefError):
    default_reason = "already linked into twin"


class AmbiguousTwinError(ReefError):
    default_reason = "base and twin resolve to the same directory"


class PermissionDeniedError(ReefError):
    default_reason = "permission denied"


class ConflictError(ReefError):
    default_reason = "occupied by an unrelated file"


class BrokenLinkUnresolvableError(ReefError):
    default_reason = "link target missing in every twin location"


class PartialFailureError(ReefError):
    """Raised after a kick whose link step failed and was rolled back.

    ``rollback_error`` is set when restoring the original file failed too; in
    that case the moved copy is still in the twin.
    """

    def __init__(
        self,
        path: str,
        cause: BaseException,
        rollback_error: BaseException | None = None,
    ):
        self.cause = cause
        self.rollback_error = rollback_error
        if rollback_error is None:
            reason = f"linking failed ({cause}); file restored"
        else:
            reason = (
                f"linking failed ({cause}); rollback failed ({rollback_error}), "
                "file left in twin"
            )
        super().__init__(path, reason)
