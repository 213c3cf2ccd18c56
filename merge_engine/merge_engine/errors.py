"""Error taxonomy for the merge engine.

Every engine error carries a ``status_code`` so that outer layers can tell
caller-input problems (4xx) apart from failures of the engine or its
collaborators (5xx) without inspecting messages.
"""

from __future__ import annotations


class MergeEngineError(Exception):
    """Base class for errors raised by the merge engine."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidMergeColumnsError(MergeEngineError, ValueError):
    """The merge-columns key specification is missing or malformed."""

    status_code = 400


class InvalidMergeSourceError(MergeEngineError, ValueError):
    """The incoming source payload cannot be grouped into collections."""

    status_code = 400


def is_client_error(exc: BaseException) -> bool:
    """Return ``True`` when *exc* was caused by caller input."""
    status_code = getattr(exc, "status_code", 500)
    return isinstance(status_code, int) and 400 <= status_code < 500
