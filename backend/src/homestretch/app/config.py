"""Application configuration via Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

# Resolve .env from backend/ regardless of CWD
_ENV_FILE = Path(__file__).resolve().parents[3] / ".env"


class Settings(BaseSettings):
    """Central configuration loaded from environment variables / .env file."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./homestretch.db"

    # AI
    gemini_api_key: str = ""
    gemini_model: str = "gemini-3-flash-preview"

    # Email
    sendgrid_api_key: str = ""
    email_domain: str = "inbox.homestretch.app"
    inbound_webhook_token: str = ""

    # Stored attachments (inbound PDFs, purchase contracts)
    attachments_dir: str = "data/attachments"

    # Pipeline automation
    collaborator_timeout_seconds: float = 60.0
    signal_confidence_floor: float = 0.8
    inbox_automation_interval_seconds: int = 300
    inbox_analysis_max_attempts: int = 3

    # CORS / Frontend
    cors_origins: str = "http://localhost:5173"

    # General
    debug: bool = True

    model_config = {"env_file": str(_ENV_FILE), "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list.

        In debug mode, returns ["*"] to allow any origin (LAN IPs, etc.).
        """
        if self.debug:
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()
