"""Streaming completion client for ChatDeck."""

from chatdeck.llm.client import (
    CompletionStream,
    StreamingCompletionClient,
    StreamState,
    TextDelta,
)

__all__ = ["CompletionStream", "StreamState", "StreamingCompletionClient", "TextDelta"]
