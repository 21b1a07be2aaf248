from typing import List, Optional, Union
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    ENVIRONMENT: str = "development"
    NAME: str = "EPIC-Q Alerts Server"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api/v1"
    CRON_PREFIX: str = "/api/cron"
    """Pydantic v2 doesn't support parsing List[str] from a plain comma-separated string by default anymore."""
    ALLOWED_HOSTS: Union[str, List[str]] = "http://localhost:3000"
    LOG_LEVEL: str = "info"
    TIMEZONE: str = "America/Argentina/Buenos_Aires"

    # Database
    DATABASE_URL: str = "sqlite:///./epicq.db"

    # Redis & Celery
    REDIS_PASSWORD: str = ""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    # Scheduler trigger
    CRON_SECRET: Optional[str] = None
    CRON_RATE_LIMIT_REQUESTS: int = 10
    CRON_RATE_LIMIT_WINDOW_SECONDS: int = 60
    API_RATE_LIMIT_REQUESTS: int = 100
    API_RATE_LIMIT_WINDOW_SECONDS: int = 15 * 60
    RATE_LIMIT_BACKEND: str = "redis"
    # Peers whose X-Forwarded-For / X-Real-IP headers are honoured
    TRUSTED_PROXY_HOSTS: Union[str, List[str]] = ""

    # Transactional email provider (HTTP API)
    EMAIL_API_KEY: Optional[str] = None
    EMAIL_API_BASE_URL: str = "https://api.mailersend.com/v1"
    EMAIL_FROM_ADDRESS: str = "noreply@epicq.com"
    EMAIL_FROM_NAME: str = "EPIC-Q"

    # Web Push (VAPID)
    VAPID_PUBLIC_KEY: Optional[str] = None
    VAPID_PRIVATE_KEY: Optional[str] = None
    VAPID_SUBJECT: str = "mailto:admin@epicq.com"
    PUSH_ICON_URL: str = "/icons/icon-192x192.png"
    PUSH_BADGE_URL: str = "/icons/icon-72x72.png"
    PUSH_DEFAULT_URL: str = "/notifications"

    # Dispatch
    NOTIFICATION_HTTP_TIMEOUT_SECONDS: float = 10.0
    DISPATCH_MAX_CONCURRENCY: int = 8

    @field_validator("ALLOWED_HOSTS", "TRUSTED_PROXY_HOSTS", mode="before")
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if not v:
            return []
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        return v

    @property
    def redis_url(self) -> str:
        return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )


settings = Settings()
