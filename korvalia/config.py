"""Application settings loaded from environment variables."""
from typing import List
from pathlib import Path
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Caminho absoluto para o ficheiro .env
ENV_FILE = Path(__file__).parent.parent / ".env"

DEFAULT_SCHEDULE = "Lunes a Viernes: 9:00 - 14:00 y 17:00 - 20:00\nSábados: 10:00 - 14:00"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Korvalia"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"
    cors_origins: List[str] = ["http://localhost:4200", "http://localhost:3000"]

    # Database
    database_url: str = "sqlite+aiosqlite:///./korvalia.db"

    # Emblematic CRM
    emblematic_api_url: str = "https://app.emblematic.es/api/v1"
    emblematic_token: str = ""
    emblematic_timeout: float = 30.0

    # Company contact data shown by the chatbot
    company_phone: str = ""
    company_email: str = ""
    company_address: str = ""
    company_schedule: str = DEFAULT_SCHEDULE

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v):
        if not v.startswith(('postgresql+asyncpg://', 'sqlite+aiosqlite://')):
            raise ValueError('database_url must use async driver')
        return v

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            import json
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(",")]
        return v

    @field_validator("emblematic_api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


settings = Settings()
