"""Application configuration using Pydantic Settings"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

PLAYBACK_BACKENDS = ("ffplay", "null")


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=Path(__file__).parent.parent / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(..., description="PostgreSQL database URL")
    database_ssl: bool = Field(default=False, description="Require SSL for database connections")

    # JWT Configuration
    jwt_secret_key: str = Field(..., description="Secret key for JWT token signing")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    jwt_expire_days: int = Field(default=30, description="JWT token expiration in days")
    root_password: str = Field(default="", description="Password of the built-in root user")

    # Server URLs
    frontend_url: str = Field(default="http://localhost:3000", description="Frontend URL for CORS")

    # Environment
    environment: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")

    # Heartbeat
    enable_keep_alive: bool = Field(default=True, description="Enable heartbeat task")
    keep_alive_interval: int = Field(default=300, description="Heartbeat interval in seconds")

    # Playback
    sounds_dir: Path = Field(default=Path("sounds"), description="Directory holding sound files")
    playback_backend: str = Field(default="ffplay", description="ffplay or null")
    ffplay_path: str = Field(default="ffplay", description="ffplay executable")

    # Bell scheduler
    timezone: str | None = Field(default=None, description="IANA timezone for the timetable")
    scheduler_enabled: bool = Field(default=True, description="Run the bell trigger loop")
    scheduler_tick_seconds: float = Field(default=1.0, gt=0, description="Bell tick interval")
    scheduler_catch_up_seconds: int = Field(
        default=300, ge=0, description="Maximum age of a missed bell that still rings"
    )
    scheduler_priority: int = Field(default=1, ge=-100, le=100, description="Bell query priority")

    # Dispatch
    query_history_limit: int = Field(default=400, ge=1, description="Retained queries")
    unknown_duration_fallback_seconds: float = Field(
        default=2.0, gt=0, description="Auto-finish for sounds without a known duration"
    )
    stream_buffer_chunks: int = Field(default=24, ge=1, description="Live stream chunk ring size")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid logging level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            logger.warning(f"Invalid log level '{v}', defaulting to INFO")
            return "INFO"
        return v_upper

    @field_validator("playback_backend")
    @classmethod
    def validate_playback_backend(cls, v: str) -> str:
        v_lower = v.lower()
        if v_lower not in PLAYBACK_BACKENDS:
            raise ValueError(f"playback_backend must be one of {', '.join(PLAYBACK_BACKENDS)}")
        return v_lower

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS allowed origins"""
        return [self.frontend_url]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment"""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment"""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()  # type: ignore[call-arg]
