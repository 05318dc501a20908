from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    DB_URL: str = "sqlite+aiosqlite:///./medlink.db"
    DB_AUTO_CREATE: bool = False
    STORE_BACKEND: str = "memory"  # "memory" or "sql"

    REDIS_URL: str | None = Field(
        default=None,
        validation_alias=AliasChoices("REDIS_URL", "MEDLINK_REDIS_URL"),
    )
    SINGLE_FLIGHT_TTL: int = 30
    SINGLE_FLIGHT_PREFIX: str = "lock:relationship"

    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
    ]

    model_config = SettingsConfigDict(
        env_file=Path(__file__).resolve().parents[1].parent / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

settings = Settings()
