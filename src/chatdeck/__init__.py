"""ChatDeck - a local chat client for streamed language-model endpoints."""
