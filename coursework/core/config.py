from datetime import timedelta
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "Coursework Portal"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./coursework.db"

    # JWT. DEV ONLY default secret, override with COURSEWORK_SECRET_KEY.
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    BCRYPT_ROUNDS: int = 12

    # Blob storage
    UPLOAD_DIR: str = "uploads"
    MAX_UPLOAD_MB: int = 25

    # Annotation merge
    MERGE_TIMEOUT_SECONDS: float = 30.0
    MERGE_WORKERS: int = 2
    # rasters above this are not decoded at all
    MAX_ANNOTATION_PIXELS: int = 25_000_000

    # Email
    MAIL_BACKEND: Literal["console", "smtp"] = "console"
    MAIL_FROM: str = "no-reply@coursework.example"
    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_USE_TLS: bool = True

    # staff self-registration, disabled while empty
    STAFF_INVITE_CODE: str = ""

    # used for links in emails and the grade export
    PUBLIC_BASE_URL: str = "http://localhost:8000"

    model_config = SettingsConfigDict(
        env_prefix="COURSEWORK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def access_token_expire(self) -> timedelta:
        return timedelta(minutes=self.ACCESS_TOKEN_EXPIRE_MINUTES)

    @property
    def max_upload_bytes(self) -> int:
        return self.MAX_UPLOAD_MB * 1024 * 1024


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
