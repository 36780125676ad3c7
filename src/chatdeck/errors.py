"""Error taxonomy shared by the session store, controller and completion client.

Created: 2026-10-19

Only ``CompletionError`` subclasses ever reach the user, and then only as the
sentinel assistant message. ``ValidationError`` and ``DecodeError`` are
recovered where they are raised; ``NotFoundError`` is a contract violation
reported to the calling layer.
"""


class ChatDeckError(Exception):
    """Base class for all ChatDeck errors."""


class ValidationError(ChatDeckError):
    """A send was rejected locally (blank text, unknown or busy session)."""


class NotFoundError(ChatDeckError):
    """A store operation referenced a session id that does not exist."""

    def __init__(self, session_id: str, detail: str = "unknown session"):
        super().__init__(f"{detail}: {session_id}")
        self.session_id = session_id


class DecodeError(ChatDeckError):
    """One stream frame could not be decoded. Never fatal to the stream."""


class CompletionError(ChatDeckError):
    """A completion invocation failed before or while streaming."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RequestError(CompletionError):
    """Connection failure or a non-2xx response."""


class ProtocolError(CompletionError):
    """The response carried no readable streaming body."""
