"""Configuration management using pydantic-settings."""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Cache settings loaded from SWR_* environment variables."""

    # Default freshness windows, both measured from entry creation
    default_fresh_for_seconds: float = 300.0
    default_stale_for_seconds: float = 600.0

    # Capacity before the oldest-inserted entry is evicted
    max_entries: int = 100

    # Background revalidation
    revalidation_workers: int = 4

    # Expired-path request coalescing
    coalesce_expired: bool = True
    coalesce_timeout_seconds: Optional[float] = None

    log_level: str = "INFO"

    class Config:
        env_prefix = "SWR_"
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
