# servicepoint/core/config.py
from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # database
    database_url: str = "sqlite:///./servicepoint.db"

    # tokens / sessions
    secret_key: str = "service-point-secret-key"
    jwt_algorithm: str = "HS256"
    access_token_ttl_minutes: int = 120
    session_max_age_minutes: int = 120
    token_leeway_seconds: int = 30
    bcrypt_rounds: int = 10

    # runtime
    environment: str = "development"
    log_level: str = "INFO"
    frontend_url: str = "http://localhost:3001"
    cors_origins: List[str] = ["http://localhost:3001"]
    request_timeout_seconds: float = 30.0

    # rate limiting
    rate_limit_prune_interval_seconds: int = 15 * 60
    rate_limit_retention_seconds: int = 60 * 60

    # mail (fastapi-mail); leaving username/password empty disables sending
    mail_username: Optional[str] = None
    mail_password: Optional[str] = None
    mail_from: Optional[str] = None
    mail_from_name: str = "Service Point Platform"
    mail_server: str = "smtp.gmail.com"
    mail_port: int = 587
    mail_starttls: bool = True
    mail_ssl_tls: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def mail_configured(self) -> bool:
        return bool(self.mail_username and self.mail_password)


@lru_cache
def get_settings() -> Settings:
    return Settings()
