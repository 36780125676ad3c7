"""Session controller.

Created: 2026-10-19

High-level chat operations on top of SessionStore:
- Sending a message and streaming the reply into the session
- Auto-renaming a session after its first successful reply
- Replacing failed requests with a sentinel assistant message
- Tracking the active session for a front-end

At most one stream runs per session. A stream keeps writing to the
session it started in, even if the front-end switches away; if that
session is deleted mid-stream, the remaining writes are dropped.
"""

from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chatdeck.llm.client import CompletionClientProtocol

from chatdeck.errors import CompletionError, NotFoundError, ValidationError
from chatdeck.profile.protocol import StaticContextProvider, SystemContextProvider
from chatdeck.sessions.models import UNTITLED, Message, Role, Session
from chatdeck.sessions.store import SessionStore

logger = logging.getLogger(__name__)

ERROR_MESSAGE = "❌ Error: Could not reach the language model API."
TITLE_LENGTH = 30

SUGGESTIONS = (
    "Create an image",
    "Simplify a topic",
    "Write a first draft",
    "Improve writing",
    "Draft an email",
    "Predict the future",
    "Get advice",
    "Improve communication",
)


class SessionController:
    """Orchestrates sends and session lifecycle for one front-end."""

    def __init__(
        self,
        store: SessionStore,
        client: CompletionClientProtocol,
        context_provider: SystemContextProvider | None = None,
    ):
        self.store = store
        self.client = client
        self.context_provider = context_provider or StaticContextProvider()
        self._busy: set[str] = set()

        sessions = store.sessions
        self.active_session_id: str | None = sessions[0].id if sessions else None

    # =========================================================================
    # Active session
    # =========================================================================

    @property
    def active_session(self) -> Session | None:
        if self.active_session_id is None:
            return None
        return self.store.get_session(self.active_session_id)

    def is_busy(self, session_id: str) -> bool:
        return session_id in self._busy

    def select(self, session_id: str) -> Session:
        session = self.store.get_session(session_id)
        if session is None:
            raise NotFoundError(session_id)
        self.active_session_id = session_id
        return session

    async def new_chat(self) -> Session:
        session = await self.store.create_session()
        self.active_session_id = session.id
        return session

    async def start_from_suggestion(
        self,
        text: str,
        send: bool = True,
        context_provider: SystemContextProvider | None = None,
    ) -> Session:
        """Start a session titled after a suggestion, optionally sending it."""
        session = await self.store.create_session(title=text[:TITLE_LENGTH])
        self.active_session_id = session.id
        if send:
            await self.send_message(session.id, text, context_provider)
        return session

    async def delete_chat(self, session_id: str) -> None:
        """Delete a session, moving the active pointer if needed."""
        await self.store.delete_session(session_id)
        if session_id == self.active_session_id:
            remaining = self.store.sessions
            self.active_session_id = remaining[0].id if remaining else None

    async def rename(self, session_id: str, title: str) -> None:
        await self.store.rename_session(session_id, title.strip() or UNTITLED)

    async def duplicate(self, session_id: str) -> Session:
        return await self.store.duplicate_session(session_id)

    # =========================================================================
    # Sending
    # =========================================================================

    def _validate(self, session_id: str, text: str) -> None:
        if not text or not text.strip():
            raise ValidationError("message is blank")
        if self.store.get_session(session_id) is None:
            raise ValidationError(f"no session {session_id}")
        if session_id in self._busy:
            raise ValidationError(f"session {session_id} is already streaming")

    async def send_message(
        self,
        session_id: str,
        text: str,
        context_provider: SystemContextProvider | None = None,
    ) -> Message | None:
        """Send ``text`` to the model and stream the reply into the session.

        Returns the final assistant message (the streamed reply, or the
        sentinel error message), or None if the send was rejected.
        """
        try:
            self._validate(session_id, text)
        except ValidationError as e:
            logger.debug(f"Send rejected: {e}")
            return None

        self._busy.add(session_id)
        try:
            return await self._exchange(session_id, text, context_provider or self.context_provider)
        finally:
            self._busy.discard(session_id)

    async def _exchange(
        self,
        session_id: str,
        text: str,
        context_provider: SystemContextProvider,
    ) -> Message | None:
        session = self.store.get_session(session_id)
        history = list(session.messages)

        user_message = Message(role=Role.USER, content=text)
        reply = Message(role=Role.ASSISTANT, content="")
        await self.store.append_message(session_id, user_message)
        await self.store.append_message(session_id, reply)

        try:
            system_context = await context_provider.get_system_context()
            buffer = ""
            stream = self.client.stream(history, user_message, system_context)
            async with contextlib.aclosing(aiter(stream)) as deltas:
                async for delta in deltas:
                    buffer += delta.text
                    await self._write_delta(session_id, buffer)
        except CompletionError as e:
            logger.warning(f"Completion failed for session {session_id}: {e}")
            error_message = Message(role=Role.ASSISTANT, content=ERROR_MESSAGE)
            try:
                await self.store.append_message(session_id, error_message)
            except NotFoundError:
                logger.debug(f"Session {session_id} was deleted before the error could be recorded")
            return error_message

        await self._auto_rename(session_id, text)
        return reply

    async def _write_delta(self, session_id: str, content: str) -> None:
        try:
            await self.store.update_last_message(session_id, content)
        except NotFoundError:
            logger.debug(f"Dropping delta for deleted session {session_id}")

    async def _auto_rename(self, session_id: str, text: str) -> None:
        session = self.store.get_session(session_id)
        if session is None or not session.has_default_title or not text.strip():
            return
        await self.store.rename_session(session_id, text[:TITLE_LENGTH])
