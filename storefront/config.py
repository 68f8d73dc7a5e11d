from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Runtime configuration, read from STOREFRONT_* environment variables
    or a local .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="STOREFRONT_",
        env_file=".env",
        extra="ignore",
    )

    app_name: str = "Kaizen Shop API"
    env: str = "local"
    log_format: Optional[str] = None

    database_url: str = "postgresql+asyncpg://postgres:postgres@db:5432/storefront"

    # Caching is disabled when no Redis URL is set
    redis_url: Optional[str] = None
    products_cache_ttl: int = 600

    celery_broker_url: str = "redis://redis:6379/0"
    celery_result_backend: str = "redis://redis:6379/0"
    celery_always_eager: bool = False

    jwt_secret: str = "dev-secret-change"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7  # 7 days
    password_hash_rounds: int = 12

    admin_email: Optional[str] = None
    admin_password: Optional[str] = None
    admin_name: str = "Kaizen Admin"

    low_stock_threshold: int = 5
    free_shipping_threshold: float = 50.0
    shipping_fee: float = 4.99

    cors_origins: List[str] = ["*"]


@lru_cache
def get_settings() -> Settings:
    return Settings()
