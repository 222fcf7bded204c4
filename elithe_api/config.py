from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_SQLITE_PATH = BASE_DIR / "elithe.db"
DEFAULT_SQLITE_URL = f"sqlite:///{DEFAULT_SQLITE_PATH}"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=BASE_DIR / ".env", env_prefix="APP_", case_sensitive=False)

    database_url: str = Field(default=DEFAULT_SQLITE_URL, description="SQLAlchemy database URL")
    # Comma-separated values or '*' for all
    cors_origins: str = Field(default="*")
    environment: str = Field(default="development")

    # Identity provider (bearer JWTs signed with a shared secret)
    jwt_secret: str = Field(default="dev-jwt-secret", description="Secret used to verify member access tokens")
    jwt_algorithm: str = Field(default="HS256")
    jwt_audience: Optional[str] = Field(default=None, description="Expected 'aud' claim, e.g. 'authenticated'")

    # Rate limiting (per subject+IP per minute)
    rate_limit_enabled: bool = Field(default=False)
    rate_limit_per_minute: int = Field(default=300)

    # QR rendering
    qr_box_size: int = Field(default=10)
    qr_border: int = Field(default=2)

    # Participation rules
    reward_tier_size: int = Field(default=4, description="Confirmations needed per reward tier (estrelinha)")
    birthday_window_days: int = Field(default=3)
    birthday_lookahead_days: int = Field(default=7)

    @property
    def cors_origins_list(self) -> List[str]:
        s = (self.cors_origins or "").strip()
        if not s or s == "*":
            return ["*"]
        return [part.strip() for part in s.split(",") if part.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
