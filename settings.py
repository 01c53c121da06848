from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import List, Any, Optional
import json


def parse_cors_origins(v: Any) -> List[str]:
    """Parse CORS origins from string or list"""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        if v.startswith('['):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        return [origin.strip() for origin in v.split(',') if origin.strip()]
    return []


class Settings(BaseSettings):
    """Application settings - all configurable via environment variables"""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Application
    APP_NAME: str = "School Portal API"
    ENVIRONMENT: str = "development"
    PORT: int = 3001
    STATIC_DIR: str = "public"

    # Database
    DATABASE_URL: Optional[str] = None
    DATABASE_NAME: str = "school_portal"
    DATABASE_TIMEOUT_MS: int = 5000

    # Sessions
    SECRET_KEY: str = "dev-secret-change-me"
    ALGORITHM: str = "HS256"
    SESSION_EXPIRE_MINUTES: int = 60 * 24
    BCRYPT_ROUNDS: int = 12
    COOKIE_SECURE: bool = False

    # CORS
    ALLOWED_ORIGINS: Any = [
        "http://localhost:5000",
        "http://localhost:3000",
        "http://localhost:3001",
    ]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def validate_allowed_origins(cls, v):
        return parse_cors_origins(v)

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


settings = Settings()
