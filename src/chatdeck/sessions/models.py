"""Session data models.

Created: 2026-10-19

- Sessions own an ordered list of messages; only the last assistant
  message is ever mutated in place (while it streams).
- All IDs are UUIDs and are never reused, including across duplicates.
- Timestamps are ISO 8601 strings for JSON serialization.
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

DEFAULT_TITLE = "New Conversation"
UNTITLED = "Untitled"
COPY_SUFFIX = " (copy)"


class Role(str, Enum):
    """Author of a message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


def generate_id() -> str:
    """Generate a unique ID."""
    return str(uuid.uuid4())


def now_iso() -> str:
    """Get current UTC time as ISO 8601 string."""
    return datetime.now(UTC).isoformat()


@dataclass
class Message:
    """One turn in a session."""

    role: Role = Role.USER
    content: str = ""
    id: str = field(default_factory=generate_id)
    created_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "created_at": self.created_at,
        }

    def to_wire(self) -> dict[str, str]:
        """Shape sent to the completion endpoint."""
        return {"role": self.role.value, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        return cls(
            id=data.get("id") or generate_id(),
            role=Role(data.get("role", "user")),
            content=data.get("content", ""),
            created_at=data.get("created_at") or now_iso(),
        )

    def copy_with_new_id(self) -> "Message":
        return Message(role=self.role, content=self.content, created_at=self.created_at)


@dataclass
class Session:
    """A titled, ordered conversation thread."""

    title: str = DEFAULT_TITLE
    messages: list[Message] = field(default_factory=list)
    id: str = field(default_factory=generate_id)

    @property
    def has_default_title(self) -> bool:
        return self.title == DEFAULT_TITLE

    @property
    def last_message(self) -> Message | None:
        return self.messages[-1] if self.messages else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "messages": [m.to_dict() for m in self.messages],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        return cls(
            id=data.get("id") or generate_id(),
            title=data.get("title") or DEFAULT_TITLE,
            messages=[Message.from_dict(m) for m in data.get("messages", [])],
        )

    def duplicate(self) -> "Session":
        """Copy this session with fresh ids for the session and every message."""
        return Session(
            title=f"{self.title}{COPY_SUFFIX}",
            messages=[m.copy_with_new_id() for m in self.messages],
        )
