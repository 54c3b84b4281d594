"""Configuration from environment (no hardcoded secrets)."""

from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Backend settings from env."""

    model_config = SettingsConfigDict(env_prefix="SKYVAULT_", extra="ignore")

    # Object store (file bytes) and record store (SQLite)
    storage_base_path: Path = Path("/var/lib/skyvault/objects")
    db_path: Path = Path("/data/skyvault.db")

    # Seconds a record-store call may take before it counts as unavailable
    store_timeout_seconds: float = 10.0

    # JWT
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 30
    refresh_token_expire_days: int = 7

    # Signed download links
    signed_url_expire_seconds: int = 60
    public_base_url: str = ""

    # Self-service sign-up via POST /api/auth/register
    allow_registration: bool = True

    # CORS: set as comma-separated string in env (e.g. https://drive.example.com)
    # so pydantic-settings does not try to JSON-decode it
    cors_origins: str = "http://localhost:3000"

    @property
    def cors_origins_list(self) -> List[str]:
        """CORS origins as a list (split on comma)."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()] or [
            "http://localhost:3000"
        ]

    # Server
    host: str = "0.0.0.0"
    port: int = 8080

    # Logging (empty log_file = stderr only; level DEBUG|INFO|WARNING|ERROR)
    log_level: str = "INFO"
    log_file: str = ""


def get_settings() -> Settings:
    """Return application settings."""
    return Settings()
