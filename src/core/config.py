"""Configuration management for chorely."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Document store
    sqlite_db_path: str = Field(default="data/chorely.db", description="Path to the SQLite document store")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")
    environment: str = Field(default="development", description="Deployment environment name")
    log_level: str = Field(default="INFO", description="Root log level")

    @property
    def is_production(self) -> bool:
        """Return True when running in the production environment."""
        return self.environment.lower() == "production"


# Application Constants
class Constants:
    """Application-wide constants."""

    # Proposals close once approving votes exceed this count (regardless of group size)
    VOTE_QUORUM_THRESHOLD: int = 4

    # Recurrence
    RECURRENCE_HORIZON_YEARS: int = 1

    # Chore dates are fixed-width and zero-padded so they compare as strings
    DATE_FORMAT: str = "%Y-%m-%d"
    DATE_PATTERN: str = r"^\d{4}-\d{2}-\d{2}$"

    # New chore form defaults
    DEFAULT_NEW_CHORE_MINUTES: int = 30

    # Group keys are 6-digit numbers
    GROUP_KEY_MIN: int = 100000
    GROUP_KEY_MAX: int = 999999
    GROUP_KEY_MAX_ATTEMPTS: int = 20

    # Equity windows
    EQUITY_WEEK_DAYS: int = 7
    EQUITY_MONTH_DAYS: int = 30

    # Display fallbacks
    DEFAULT_MEMBER_COLOR: str = "Green"
    UNASSIGNED_COLOR: str = "Gray"
    UNKNOWN_MEMBER_NAME: str = "Unknown"

    # HTTP
    USER_ID_HEADER: str = "X-User-Id"


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
