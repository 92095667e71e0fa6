"""
ElderVoice - Configuration and settings.

ClientSettings is all the signup wizard and CLI need.
ServerSettings extends it with Supabase for the backend router.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from signup.store import STORAGE_KEY

DEFAULT_STATE_DIR = Path("~/.eldervoice")


class ClientSettings(BaseSettings):
    """
    Settings for driving the signup wizard.

    No Supabase fields, so the CLI runs against any backend without them.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    eldervoice_env: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Backend
    api_base_url: str = "http://localhost:8000"
    api_timeout_seconds: float = 30.0

    # Local state (the wizard's durable slot)
    signup_store_path: Path = DEFAULT_STATE_DIR / f"{STORAGE_KEY}.json"
    auth_session_path: Path = DEFAULT_STATE_DIR / "auth_session.json"

    @property
    def is_development(self) -> bool:
        return self.eldervoice_env == "development"


class ServerSettings(ClientSettings):
    """Backend settings: adds Supabase and CORS."""

    # Supabase
    supabase_url: str
    supabase_anon_key: str
    supabase_service_role_key: str

    # Web
    cors_origins: list[str] = [
        "http://localhost:5173",  # Vite dev server
        "http://127.0.0.1:5173",
    ]


@lru_cache
def get_client_settings() -> ClientSettings:
    """Get cached ClientSettings instance (no Supabase fields required)."""
    return ClientSettings()


@lru_cache
def get_settings() -> ServerSettings:
    """Get cached ServerSettings instance."""
    return ServerSettings()


class _SettingsProxy:
    """Lazy proxy for settings to avoid loading .env at import time."""

    def __init__(self, factory):
        self._factory = factory
        self._instance = None

    def __getattr__(self, name: str):
        if self._instance is None:
            self._instance = self._factory()
        return getattr(self._instance, name)


client_settings = _SettingsProxy(get_client_settings)
settings = _SettingsProxy(get_settings)
