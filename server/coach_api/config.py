"""Application configuration loaded from environment variables."""
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Step-coach job API
    coach_api_url: str = "http://localhost:5000"
    request_timeout: float = 30.0
    auth_token: Optional[str] = None

    # Generation policy
    poll_interval_seconds: float = 5.0
    stale_after_minutes: float = 10.0
    eligibility_cache_seconds: float = 60.0

    # Lease persistence (in-memory when unset)
    lease_db_path: Optional[str] = None

    # API configuration
    api_host: str = "127.0.0.1"
    api_port: int = 8083
    log_level: str = "INFO"

    # CORS
    cors_origins: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    class Config:
        env_prefix = "COACH_"


@lru_cache
def get_settings() -> Settings:
    return Settings()
