"""ChatDeck configuration.

Created: 2026-10-19

Settings come from ``CHATDECK_*`` environment variables or a ``.env``
file in the working directory. The defaults target a local LM Studio
server.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_DIR = Path.home() / ".chatdeck"


class Settings(BaseSettings):
    """Runtime settings for the chat client."""

    model_config = SettingsConfigDict(
        env_prefix="CHATDECK_",
        env_file=".env",
        extra="ignore",
    )

    # Completion endpoint
    endpoint_url: str = "http://127.0.0.1:1234/v1/chat/completions"
    model: str = "meta-llama-3.1-8b-instruct"
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, gt=0)
    request_timeout: float = Field(default=120.0, gt=0)

    # Storage
    data_dir: Path = DEFAULT_DATA_DIR
    snapshot_key: str = "chatSessions"
    profile_path: Path | None = None

    log_level: str = "INFO"

    def resolved_profile_path(self) -> Path:
        return self.profile_path or (self.data_dir / "profile.json")


def get_config_dir(settings: Settings | None = None) -> Path:
    """Return the data directory, creating it if needed."""
    path = (settings or get_settings()).data_dir
    path.mkdir(parents=True, exist_ok=True)
    return path


_settings_instance: Settings | None = None


def get_settings() -> Settings:
    """Get or create the settings singleton."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance


def reset_settings() -> None:
    """Reset the settings singleton (for testing)."""
    global _settings_instance
    _settings_instance = None
