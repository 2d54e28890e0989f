from functools import lru_cache
from pydantic_settings import BaseSettings
from typing import List
import os

class Settings(BaseSettings):
    # Database configuration with fallback
    database_url: str = os.getenv(
        "DATABASE_URL",
        "sqlite:///./clips.db"
    )

    # Environment
    environment: str = os.getenv("ENVIRONMENT", "production")
    log_level: str = "INFO"
    auto_create_tables: bool = True

    # Blob storage
    storage_root: str = "uploads"
    stream_chunk_size: int = 64 * 1024

    # CORS
    allowed_origins: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://localhost:8080",
    ]

    # Privileged caller (operator) detection, resolved at the edge only.
    # Empty token disables the header bypass: set PRIVILEGED_TOKEN (see
    # .env.example) or nobody can view or list private clips.
    privileged_header: str = "X-User-Type"
    privileged_token: str = ""
    privileged_origins: List[str] = []

    # Clips
    default_owner_id: int = 1
    recent_clips_limit: int = 4
    max_recent_limit: int = 50
    video_hash_length: int = 24

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"

@lru_cache
def get_settings() -> Settings:
    return Settings()
