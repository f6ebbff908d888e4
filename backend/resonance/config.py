from functools import lru_cache
from typing import List, Optional, Union
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    APP_ENV: str = "development"
    CORS_ORIGINS: Union[List[str], str] = ["*"]

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/resonance.db"

    # Celery (Redis broker)
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"

    # Storage: audio/ and temp/ live under the same root so promotion is a rename
    UPLOADS_DIR: str = "uploads"

    # Upload
    MAX_UPLOAD_SIZE_MB: int = 100
    UPLOAD_CHUNK_SIZE: int = 1024 * 1024
    ALLOWED_AUDIO_TYPES: List[str] = [
        "audio/mpeg", "audio/mp3",
        "audio/wav", "audio/x-wav",
        "audio/ogg",
        "audio/flac", "audio/x-flac",
        "audio/m4a", "audio/x-m4a", "audio/mp4",
        "audio/aac",
    ]

    # Transcoding
    FFMPEG_BIN: str = "ffmpeg"
    TARGET_BITRATE_KBPS: int = 192
    PASSTHROUGH_MAX_BITRATE_KBPS: int = 256
    PROCESS_TIMEOUT_SEC: float = 300.0
    ANALYSIS_TIMEOUT_SEC: float = 120.0

    # Radio mode
    SIMILAR_DEFAULT_LIMIT: int = 20
    SIMILAR_MAX_LIMIT: int = 100
    BPM_TOLERANCE: int = 15
    ENERGY_TOLERANCE: int = 25

    # Admin
    ADMIN_USERNAME: Optional[str] = None
    ADMIN_EMAIL: Optional[str] = None


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
