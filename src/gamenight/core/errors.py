"""Error taxonomy shared by the store, router, transport, and synchronizer.

ValidationError: a required field is missing or unreadable. Shown to the
    user, nothing is written.
NotRegistered / NotFound: referential lookups that came up empty. Logged and
    reported to the user as a generic failure.
TransportError: an outbound Discord call failed. EditQuotaExceeded is the
    one recognized transient case and triggers post recreation.
ProtocolError: the inbound payload is not something we understand. Answered
    with HTTP 400.
"""

from __future__ import annotations


class GamenightError(Exception):
    """Base class for all domain errors."""


class ValidationError(GamenightError):
    """User-supplied input is missing or malformed."""


class NotRegistered(GamenightError):
    """A vote referenced a player or target that does not exist."""


class NotFound(GamenightError):
    """A lookup by external message id (or natural key) matched nothing."""


class TransportError(GamenightError):
    """An outbound Discord request failed.

    ``status`` is the HTTP status (0 when the request never completed) and
    ``code`` the Discord JSON error code, when the response carried one.
    """

    def __init__(self, message: str, *, status: int = 0, code: int | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.code = code


class EditQuotaExceeded(TransportError):
    """Discord refused an edit: too many edits to a message older than an hour."""


class ProtocolError(GamenightError):
    """Base for inbound payloads the router cannot classify."""

    reason = "bad request"


class UnknownInteractionType(ProtocolError):
    reason = "unknown interaction type"


class UnknownCommand(ProtocolError):
    reason = "unknown command"


class UnknownAction(ProtocolError):
    reason = "unknown action"
