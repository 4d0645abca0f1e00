"""Application configuration via environment variables."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings loaded from .env or environment."""

    DATABASE_URL: str = "sqlite:///./historylog.db"
    CORS_ORIGINS: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"

    # History log defaults, overridable per registered model
    HISTORY_TABLE_SUFFIX: str = "_history"
    HISTORY_OMIT_PATHS: list[str] = ["id", "version"]
    HISTORY_FAILURE_POLICY: str = "block"

    class Config:
        env_file = ".env"


settings = Settings()
