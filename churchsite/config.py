from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv
from typing import Optional

load_dotenv()


class Settings(BaseSettings):
    # Application settings
    app_name: str = "Church Site"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"
    log_json: bool = True

    # Database settings
    database_url: str

    # Security settings
    secret_key: str
    access_token_expire_minutes: int = 30
    jwt_algorithm: str = "HS256"

    # Redis settings
    redis_url: Optional[str] = None
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None
    cache_enabled: bool = True

    # View tracking policy
    view_store_backend: str = "redis"  # "redis" or "memory"
    view_dedup_ttl_seconds: int = 1800
    view_rate_limit: int = 10
    view_rate_window_seconds: int = 3600
    bot_filter_enabled: bool = True

    # Stats policy
    stats_cache_ttl_seconds: int = 60
    stats_max_age_seconds: int = 300
    stats_drift_tolerance: int = 0
    trending_cache_ttl_seconds: int = 3600
    trending_warm_interval_minutes: int = 30

    # HTTP throttling for like/unlike
    like_rate_limit: str = "30/minute"

    # CORS settings
    allowed_origins: list[str] = ["http://localhost:3000", "http://localhost:8000"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


settings = Settings()
