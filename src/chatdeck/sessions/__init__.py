"""Sessions - persistent chat threads for ChatDeck.

Created: 2026-10-19

Usage:
    from chatdeck.sessions import JsonFileSnapshot, SessionController, SessionStore

    store = SessionStore.load(JsonFileSnapshot(Path("~/.chatdeck").expanduser()))
    controller = SessionController(store, StreamingCompletionClient(settings))

    session = await controller.new_chat()
    reply = await controller.send_message(session.id, "Hello!")
"""

from chatdeck.sessions.controller import (
    ERROR_MESSAGE,
    SUGGESTIONS,
    TITLE_LENGTH,
    SessionController,
)
from chatdeck.sessions.models import DEFAULT_TITLE, Message, Role, Session
from chatdeck.sessions.persistence import (
    JsonFileSnapshot,
    MemorySnapshot,
    SessionPersistence,
)
from chatdeck.sessions.store import SessionStore

__all__ = [
    # Models
    "DEFAULT_TITLE",
    "Message",
    "Role",
    "Session",
    # Persistence
    "JsonFileSnapshot",
    "MemorySnapshot",
    "SessionPersistence",
    # Store
    "SessionStore",
    # Controller
    "ERROR_MESSAGE",
    "SUGGESTIONS",
    "TITLE_LENGTH",
    "SessionController",
]
