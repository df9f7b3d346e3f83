"""
Exceptions raised by the bracket engine.

Every error carries a stable machine-readable ``kind`` and the HTTP status the
web layer answers with, so callers can map them without string matching.
"""


class BracketError(Exception):
    """Base class for all bracket engine errors."""

    kind = 'error'
    status_code = 500

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

    def to_dict(self) -> dict:
        return {'error': self.reason, 'kind': self.kind}


class ValidationError(BracketError):
    """Malformed input: bad scores, missing winner, unknown format."""

    kind = 'validation'
    status_code = 400


class NotFoundError(BracketError):
    """Unknown tournament, bracket, match or payout."""

    kind = 'not_found'
    status_code = 404


class ConflictError(BracketError):
    """The bracket changed between read and write. Retry with a fresh read."""

    kind = 'conflict'
    status_code = 409


class StateError(BracketError):
    """The operation is not valid for the current match or bracket state."""

    kind = 'state'
    status_code = 422
