"""
Application configuration using Pydantic Settings.
All environment-specific values are centralized here.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── App ──────────────────────────────────────────────
    app_name: str = "Course Portal Skills Engine"
    debug: bool = False
    public_base_url: str = "http://localhost:3000"

    # ── Storage ──────────────────────────────────────────
    storage_backend: str = "mongo"  # "mongo" | "memory" (tests and local development only)
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "skills_portal"

    # ── LearnWorlds (enrollment provider) ────────────────
    learnworlds_api_url: str = ""
    learnworlds_school_url: str = ""
    learnworlds_client_id: str = ""
    learnworlds_access_token: str = ""
    course_url_template: str = "{school_url}/course/{course_id}"
    enrollment_timeout_seconds: float = 5.0  # per request
    enrollment_deadline_seconds: float = 10.0  # per provider call, across all its requests
    enrollment_cache_ttl_seconds: float = 60.0
    user_lookup_max_pages: int = 20

    # ── Verification snapshots ───────────────────────────
    snapshot_ttl_days: Optional[int] = None  # None = never expires

    # ── Sessions ─────────────────────────────────────────
    session_cookie_name: str = "portal-session"

    # ── Logging ──────────────────────────────────────────
    log_level: str = "INFO"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings (singleton)."""
    return Settings()
