# Profile context for the system message.
# Created: 2026-10-19

from chatdeck.profile.default_provider import ProfileContextProvider
from chatdeck.profile.protocol import StaticContextProvider, SystemContextProvider

__all__ = [
    "ProfileContextProvider",
    "StaticContextProvider",
    "SystemContextProvider",
]
