"""
Configuration management for Account Flow.

Loads settings from config.yaml and environment variables.
"""

import os
import secrets
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
CONFIG_FILE = PROJECT_ROOT / "config.yaml"
DATA_DIR = PROJECT_ROOT / "data"

# Ensure directories exist
DATA_DIR.mkdir(exist_ok=True)


def load_config() -> dict[str, Any]:
    """Load configuration from YAML file."""
    if CONFIG_FILE.exists():
        with open(CONFIG_FILE, "r") as f:
            return yaml.safe_load(f) or get_default_config()
    return get_default_config()


def get_default_config() -> dict[str, Any]:
    """Return default configuration if config.yaml doesn't exist."""
    return {
        "app": {
            "name": "Account Flow",
            "url": "http://localhost:8000",
        },
        "links": {
            "email_confirm_hours": 24,
            "reset_request_hours": 1,
            "purge_on_startup": True,
        },
        "session": {
            "max_age_days": 14,
            "https_only": False,
        },
    }


class Settings:
    """Application settings singleton."""

    _instance = None
    _config: dict[str, Any] = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._config = load_config()
        return cls._instance

    @property
    def app_name(self) -> str:
        return self.get("app.name", "Account Flow")

    @property
    def app_url(self) -> str:
        # Environment wins so deployments don't need a config.yaml
        env_url = os.getenv("APP_URL")
        if env_url:
            return env_url.rstrip("/")
        return self.get("app.url", "http://localhost:8000").rstrip("/")

    @property
    def email_confirm_hours(self) -> int:
        return self.get("links.email_confirm_hours", 24)

    @property
    def reset_request_hours(self) -> int:
        return self.get("links.reset_request_hours", 1)

    @property
    def purge_links_on_startup(self) -> bool:
        return self.get("links.purge_on_startup", True)

    @property
    def session_max_age_days(self) -> int:
        return self.get("session.max_age_days", 14)

    @property
    def session_https_only(self) -> bool:
        return self.get("session.https_only", False)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a config value by dot-notation key."""
        keys = key.split(".")
        value = self._config
        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default
        return value if value is not None else default


# Global settings instance
settings = Settings()


def get_database_url() -> str:
    """Get database URL from environment or default."""
    default_db = f"sqlite:///{DATA_DIR}/accounts.db"
    return os.getenv("DATABASE_URL", default_db)


_fallback_session_secret = secrets.token_hex(32)


def get_session_secret() -> str:
    """
    Get the secret used to sign session cookies.

    Falls back to a random per-process secret, which logs everyone out
    on restart. Set SESSION_SECRET in production.
    """
    secret = os.getenv("SESSION_SECRET", "").strip()
    return secret or _fallback_session_secret


def get_google_client_id() -> str | None:
    """Get Google OAuth client ID."""
    value = os.getenv("GOOGLE_CLIENT_ID", "").strip()
    return value or None


def get_google_client_secret() -> str | None:
    """Get Google OAuth client secret."""
    value = os.getenv("GOOGLE_CLIENT_SECRET", "").strip()
    return value or None


def is_google_configured() -> bool:
    """Check if Google login is configured."""
    return get_google_client_id() is not None and get_google_client_secret() is not None
