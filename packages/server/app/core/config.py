"""
Application configuration loaded from environment variables.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Yoink API server configuration."""

    model_config = SettingsConfigDict(env_prefix="YOINK_", env_file=".env", extra="ignore")

    # Database ("memory" selects the in-memory stores)
    database_url: str = "sqlite+aiosqlite:///./yoink.db"

    # Redis (optional, enables cross-process organization locks)
    redis_url: Optional[str] = None

    # User sessions
    session_ttl_seconds: int = 7 * 24 * 60 * 60
    session_refresh_threshold_seconds: int = 24 * 60 * 60

    # API tokens
    max_tokens_per_user: int = 10
    bcrypt_rounds: int = 12

    # Operator (admin) console
    admin_password: Optional[str] = None
    admin_session_secret: Optional[str] = None
    admin_session_ttl_seconds: int = 24 * 60 * 60

    # WebAuthn relying party
    webauthn_rp_id: str = "localhost"
    webauthn_rp_name: str = "Yoink"
    webauthn_origin: list[str] = ["http://localhost:5173"]
    webauthn_challenge_secret: str = "CHANGE_ME_IN_PRODUCTION_CHALLENGE_SECRET"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    log_level: str = "info"
    log_format: Literal["json", "text"] = "json"

    # CORS
    cors_origins: list[str] = ["http://localhost:5173"]

    @property
    def admin_enabled(self) -> bool:
        return bool(self.admin_password and self.admin_session_secret)


@lru_cache
def get_settings() -> Settings:
    return Settings()
