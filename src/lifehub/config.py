"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class BackendProvider(str, Enum):
    """Hosted backends the adapter layer can run against."""

    supabase = "supabase"
    firebase = "firebase"
    appwrite = "appwrite"


# Settings that must be non-empty for each provider
_REQUIRED_SETTINGS: dict[BackendProvider, tuple[str, ...]] = {
    BackendProvider.supabase: ("SUPABASE_URL", "SUPABASE_ANON_KEY"),
    BackendProvider.firebase: (
        "FIREBASE_API_KEY",
        "FIREBASE_PROJECT_ID",
        "FIREBASE_STORAGE_BUCKET",
    ),
    BackendProvider.appwrite: (
        "APPWRITE_ENDPOINT",
        "APPWRITE_PROJECT_ID",
        "APPWRITE_DATABASE_ID",
        "APPWRITE_BUCKET_ID",
        "APPWRITE_API_KEY",
    ),
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # CORS (browser clients)
    CORS_ALLOWED_ORIGINS: str = "*"

    # Active backend (fixed for the lifetime of the process)
    BACKEND_PROVIDER: BackendProvider = BackendProvider.supabase

    # Supabase
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: str = ""
    SUPABASE_IMAGES_BUCKET: str = "images"  # Objects in this bucket are stored under {user_id}/

    # Firebase
    FIREBASE_API_KEY: str = ""  # Web API key, used for password sign-in
    FIREBASE_PROJECT_ID: str = ""
    FIREBASE_STORAGE_BUCKET: str = ""
    FIREBASE_CREDENTIALS_FILE: str = ""  # Service account JSON; empty = application default credentials

    # Appwrite
    APPWRITE_ENDPOINT: str = "https://cloud.appwrite.io/v1"
    APPWRITE_PROJECT_ID: str = ""
    APPWRITE_DATABASE_ID: str = ""
    APPWRITE_BUCKET_ID: str = ""
    APPWRITE_API_KEY: str = ""  # Server key; Appwrite only returns session secrets to keyed callers

    # Polling (backends without push notifications)
    AUTH_POLL_INTERVAL_SECONDS: float = 5.0
    MESSAGE_POLL_INTERVAL_SECONDS: float = 2.0

    # Data access
    LIST_LIMIT: int = 500
    BACKEND_TIMEOUT: int = 30

    def missing_backend_settings(self) -> list[str]:
        """Return names of required settings that are empty for BACKEND_PROVIDER."""
        return [
            name
            for name in _REQUIRED_SETTINGS[self.BACKEND_PROVIDER]
            if not getattr(self, name)
        ]


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
