"""Application settings and environment configuration."""

from typing import Optional
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[2]
ENV_FILE = BASE_DIR / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_name: str = "AssetFlow"
    debug: bool = False
    environment: str = "dev"  # 'dev' or 'prod'

    # Database
    database_url: str = "postgresql://localhost/assetflow"
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_pool_recycle: int = 1800
    db_pool_pre_ping: bool = True
    db_connect_timeout: int = 10
    db_pool_use_lifo: bool = True
    db_keepalives: int = 1
    db_keepalives_idle: int = 30
    db_keepalives_interval: int = 10
    db_keepalives_count: int = 5
    db_sqlite_busy_timeout: float = 30.0  # seconds a SQLite writer waits for the lock

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    api_workers: int = 4

    # Application URL (CORS origin)
    app_url: str = "http://localhost:3000"

    # Caller identity (bearer JWT issued by the auth provider)
    auth_jwt_secret: Optional[str] = None
    auth_jwt_algorithm: str = "HS256"
    auth_jwt_audience: Optional[str] = None

    # Lineage
    # Upper bound on traversal depth; lineage graphs are shallow, so hitting it
    # indicates corrupt data rather than a legitimate lineage.
    lineage_max_depth: int = 1000

    # Workflows
    workflow_list_limit_max: int = 200

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "prod"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment.lower() == "dev"


settings = Settings()
