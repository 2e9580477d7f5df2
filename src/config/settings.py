from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    APP_NAME: str = "DyFit API"
    APP_VERSION: str = "0.3.0"
    APP_ENV: Literal["development", "staging", "production"] = "development"
    DEBUG: bool = True
    API_PREFIX: str = "/api"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database (required - the app refuses to start without it)
    DATABASE_URL: str
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 10
    DB_CONNECT_TIMEOUT: float = 5.0  # seconds to establish a connection
    DB_COMMAND_TIMEOUT: float = 45.0  # seconds a single statement may take
    DB_POOL_TIMEOUT: float = 10.0  # seconds to wait for a pooled connection

    # JWT
    JWT_SECRET_KEY: str = "your-super-secret-key-change-in-production"
    JWT_REFRESH_SECRET_KEY: str = "your-refresh-secret-key-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30

    # CORS
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "https://dyfit.app",
    ]

    # Payment proof storage
    LOCAL_STORAGE_PATH: str = "./uploads"
    MAX_PROOF_SIZE: int = 10 * 1024 * 1024  # 10MB

    # Entitlements
    DEFAULT_TOKEN_DAYS: int = 30
    PLAN_EXPIRY_WARNING_DAYS: int = 3
    PLAN_EXPIRY_CHECK_INTERVAL_SECONDS: int = 24 * 60 * 60
    SCHEDULER_ENABLED: bool = True

    # Observability (GlitchTip/Sentry)
    GLITCHTIP_DSN: str = ""
    GLITCHTIP_TRACES_SAMPLE_RATE: float = 0.2
    LOG_LEVEL: str = "INFO"

    @field_validator("DATABASE_URL")
    @classmethod
    def _database_url_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("DATABASE_URL must be set")
        return value

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
