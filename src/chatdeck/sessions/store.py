"""In-memory session store.

Created: 2026-10-19

The store is the single authoritative owner of the session collection.
Every mutating call writes a full snapshot through the injected
persistence backend before returning, so a burst of stream deltas issues
one save per delta. Saves are idempotent overwrites.

Sessions are kept newest-first: created and duplicated sessions are
inserted at the front.
"""

import logging
from collections.abc import Callable

from chatdeck.errors import NotFoundError
from chatdeck.sessions.models import Message, Session
from chatdeck.sessions.persistence import SessionPersistence

logger = logging.getLogger(__name__)

MessageListener = Callable[[str, Message], None]


class SessionStore:
    """Ordered collection of sessions backed by a snapshot persistence.

    Front-ends register listeners to render a streaming message as it
    grows; they are called after every ``update_last_message``.
    """

    def __init__(self, persistence: SessionPersistence, sessions: list[Session] | None = None):
        self.persistence = persistence
        self._sessions: list[Session] = list(sessions) if sessions else []
        self._listeners: list[MessageListener] = []

    @classmethod
    def load(cls, persistence: SessionPersistence) -> "SessionStore":
        """Create a store seeded from the persisted snapshot."""
        return cls(persistence, persistence.load())

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def sessions(self) -> list[Session]:
        return list(self._sessions)

    def get_session(self, session_id: str) -> Session | None:
        for session in self._sessions:
            if session.id == session_id:
                return session
        return None

    def _require(self, session_id: str) -> Session:
        session = self.get_session(session_id)
        if session is None:
            raise NotFoundError(session_id)
        return session

    def _persist(self) -> None:
        self.persistence.save(self._sessions)

    def add_listener(self, listener: MessageListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: MessageListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # =========================================================================
    # Mutations
    # =========================================================================

    async def create_session(self, title: str | None = None) -> Session:
        """Create an empty session at the front of the collection."""
        session = Session(title=title) if title else Session()
        self._sessions.insert(0, session)
        self._persist()
        logger.debug(f"Created session {session.id}")
        return session

    async def delete_session(self, session_id: str) -> None:
        """Remove a session. Unknown ids are ignored."""
        before = len(self._sessions)
        self._sessions = [s for s in self._sessions if s.id != session_id]
        if len(self._sessions) != before:
            logger.debug(f"Deleted session {session_id}")
        self._persist()

    async def rename_session(self, session_id: str, title: str) -> None:
        session = self._require(session_id)
        session.title = title
        self._persist()

    async def duplicate_session(self, session_id: str) -> Session:
        """Copy a session with fresh ids, inserted at the front."""
        copy = self._require(session_id).duplicate()
        self._sessions.insert(0, copy)
        self._persist()
        logger.debug(f"Duplicated session {session_id} as {copy.id}")
        return copy

    async def append_message(self, session_id: str, message: Message) -> None:
        session = self._require(session_id)
        session.messages.append(message)
        self._persist()

    async def update_last_message(self, session_id: str, content: str) -> Message:
        """Replace the content of the session's last message.

        Only used for the assistant message that is currently streaming.
        """
        session = self._require(session_id)
        last = session.last_message
        if last is None:
            raise NotFoundError(session_id, "session has no messages")
        last.content = content
        self._persist()
        for listener in list(self._listeners):
            listener(session_id, last)
        return last
