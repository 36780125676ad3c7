"""
Profile provider reading from a local profile.json.
Created: 2026-10-19

Two layouts are accepted:
- a team roster: {"users": [{...}, {...}]}
- a single user profile: {"name": ..., "role": ..., "skills": [...], ...}
"""

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

GENERIC_PROMPT = "You are a helpful AI assistant."


def roster_prompt(users: list[Any]) -> str:
    return (
        "You are a helpful assistant who knows the following team members:\n"
        f"{json.dumps(users, indent=2, ensure_ascii=False)}\n"
        "If the user asks about them, answer using this info. Otherwise, respond normally."
    )


def _joined(value: Any) -> str:
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    return str(value or "")


def user_profile_prompt(profile: dict[str, Any]) -> str:
    lines = [
        "You are a helpful AI assistant. You know the following about the user:",
        f"Name: {profile.get('name') or 'Unknown'}",
        f"Role: {profile.get('role') or 'Not specified'}",
        f"Skills: {_joined(profile.get('skills'))}",
        f"Experience: {profile.get('experience') or 'Not specified'}",
        f"Company: {profile.get('company') or 'Not specified'}",
        f"Location: {profile.get('location') or 'Not specified'}",
        f"Goals: {_joined(profile.get('goals'))}",
        "",
        "Always personalize responses based on this profile.",
    ]
    return "\n".join(lines)


class ProfileContextProvider:
    """Builds the system context from ``profile.json``.

    The file is re-read on every call so edits apply to the next message.
    A missing or unreadable file falls back to a generic assistant prompt.
    """

    def __init__(self, path: Path):
        self.path = path

    def _load(self) -> Any:
        if not self.path.exists():
            return None
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except (ValueError, OSError) as e:
            logger.warning(f"Ignoring invalid profile {self.path}: {e}")
            return None

    async def get_system_context(self) -> str:
        data = self._load()
        if isinstance(data, dict) and isinstance(data.get("users"), list):
            return roster_prompt(data["users"])
        if isinstance(data, dict):
            return user_profile_prompt(data)
        if data is not None:
            logger.warning(f"Unexpected profile layout in {self.path}, using generic prompt")
        return GENERIC_PROMPT
