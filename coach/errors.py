"""Error taxonomy shared by the review and play controllers."""

from __future__ import annotations


class CoachError(Exception):
    """Base class for every error raised by the coach library."""


class InputError(CoachError):
    """Caller supplied missing or malformed input. Nothing was mutated."""


class UpstreamFailure(CoachError):
    """A remote collaborator (engine, commentary, store) failed or is unreachable."""


class IllegalOperation(CoachError):
    """Operation is not allowed in the current state. Nothing was mutated."""


class DataError(CoachError):
    """A stored record is missing, corrupt or cannot be repaired."""
