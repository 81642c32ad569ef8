"""Configuration management for Darubuddy."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Display settings
    currency_symbol: str = "₹"

    # Interactive entry defaults ("Friend 1", "Friend 2", ...)
    default_participant_count: int = 2
    participant_prefix: str = "Friend"

    # Database path
    database_path: Path = Path.home() / ".darubuddy" / "darubuddy.db"

    def __init__(self, **kwargs):
        """Initialize settings and create database directory if needed."""
        super().__init__(**kwargs)
        self.database_path = self.database_path.expanduser()
        self.database_path.parent.mkdir(parents=True, exist_ok=True)


def load_settings() -> Settings:
    """Load application settings from environment variables."""
    try:
        return Settings()
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load settings. Check your environment and .env file "
            f"against .env.example.\n"
            f"Error: {e}"
        ) from e
