"""
Profile context protocol.
Created: 2026-10-19
"""

from typing import Protocol


class SystemContextProvider(Protocol):
    """Supplies the free text injected as the system message of each request.

    The chat core treats the returned text as opaque.
    """

    async def get_system_context(self) -> str:
        """Return the current system context."""
        ...


class StaticContextProvider:
    """Returns the same system context on every call."""

    def __init__(self, text: str = ""):
        self.text = text

    async def get_system_context(self) -> str:
        return self.text
