"""Session snapshot persistence.

Created: 2026-10-19

The whole session collection is written as one keyed snapshot on every
store mutation. There are no partial writes: each save overwrites the
entry and the last caller wins.

Storage layout (JsonFileSnapshot):
~/.chatdeck/
    chatSessions.json   # [{id, title, messages: [{id, role, content, created_at}]}]

Design notes:
- Payloads are validated with pydantic before becoming dataclasses
- Corrupt or foreign payloads load as an empty collection, never a crash
- Legacy messages without an id are given a fresh one on load
"""

import json
import logging
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from chatdeck.sessions.models import (
    DEFAULT_TITLE,
    Message,
    Role,
    Session,
    generate_id,
    now_iso,
)

logger = logging.getLogger(__name__)


class MessageRecord(BaseModel):
    id: str | None = None
    role: Role
    content: str = ""
    created_at: str | None = None


class SessionRecord(BaseModel):
    id: str
    title: str | None = None
    messages: list[MessageRecord] = []


_SNAPSHOT = TypeAdapter(list[SessionRecord])


class SessionPersistence(Protocol):
    """Protocol for snapshot backends."""

    def load(self) -> list[Session]:
        """Return the stored sessions in order, or [] when there is nothing valid."""
        ...

    def save(self, sessions: list[Session]) -> None:
        """Overwrite the stored snapshot with ``sessions``."""
        ...


def serialize_sessions(sessions: list[Session]) -> str:
    return json.dumps([s.to_dict() for s in sessions], indent=2, ensure_ascii=False)


def deserialize_sessions(raw: str | bytes) -> list[Session]:
    """Parse a snapshot payload.

    Returns an empty list if the payload is not valid session data. Session
    and message ids that are missing, or already used earlier in the
    snapshot, are replaced with fresh ones.
    """
    try:
        records = _SNAPSHOT.validate_json(raw)
    except PydanticValidationError as e:
        logger.warning(f"Ignoring invalid session snapshot ({e.error_count()} errors)")
        return []

    seen: set[str] = set()
    seen_sessions: set[str] = set()
    sessions: list[Session] = []
    repaired = 0
    for record in records:
        messages = []
        for m in record.messages:
            message_id = m.id
            if not message_id or message_id in seen:
                message_id = generate_id()
                repaired += 1
            seen.add(message_id)
            messages.append(
                Message(
                    id=message_id,
                    role=m.role,
                    content=m.content,
                    created_at=m.created_at or now_iso(),
                )
            )
        session_id = record.id
        if session_id in seen_sessions:
            session_id = generate_id()
            repaired += 1
        seen_sessions.add(session_id)
        sessions.append(
            Session(id=session_id, title=record.title or DEFAULT_TITLE, messages=messages)
        )

    if repaired:
        logger.info(f"Assigned fresh ids to {repaired} legacy messages or sessions")
    return sessions


class JsonFileSnapshot:
    """Keyed snapshot stored as ``<base_path>/<key>.json``."""

    def __init__(self, base_path: Path, key: str = "chatSessions"):
        self.base_path = base_path
        self.key = key
        self.path = base_path / f"{key}.json"

    def load(self) -> list[Session]:
        if not self.path.exists():
            return []
        try:
            raw = self.path.read_bytes()
        except OSError as e:
            logger.error(f"Error loading {self.path}: {e}")
            return []
        sessions = deserialize_sessions(raw)
        logger.info(f"Loaded {len(sessions)} sessions from {self.path}")
        return sessions

    def save(self, sessions: list[Session]) -> None:
        """Save the snapshot atomically."""
        temp_path = self.path.with_suffix(".tmp")
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                f.write(serialize_sessions(sessions))
            temp_path.replace(self.path)
        except OSError as e:
            logger.error(f"Error saving {self.path}: {e}")
            if temp_path.exists():
                temp_path.unlink()


class MemorySnapshot:
    """Keyed snapshot held in a dict, serialized exactly like the file backend."""

    def __init__(self, key: str = "chatSessions", entries: dict[str, str] | None = None):
        self.key = key
        self.entries: dict[str, str] = entries if entries is not None else {}
        self.save_count = 0

    def load(self) -> list[Session]:
        raw = self.entries.get(self.key)
        if raw is None:
            return []
        return deserialize_sessions(raw)

    def save(self, sessions: list[Session]) -> None:
        self.entries[self.key] = serialize_sessions(sessions)
        self.save_count += 1
