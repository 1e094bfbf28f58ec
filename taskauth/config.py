"""Application configuration using Pydantic settings."""

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server
    server_port: int = 8080
    server_read_timeout: int = 15
    server_write_timeout: int = 15
    server_idle_timeout: int = 60

    # Logging
    log_level: str = "INFO"

    # Database
    storage_backend: Literal["postgres", "memory"] = "postgres"
    db_host: str = "localhost"
    db_port: int = 5432
    db_user: str = "taskauth"
    db_password: str = "password"
    db_name: str = "task_manager"

    # Revocation index
    revocation_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    revocation_sweep_interval_seconds: int = 60

    # Credentials
    jwt_secret: str = "change-me-in-production"
    jwt_expiry_hours: int = 24
    jwt_expiry_seconds: Optional[int] = None  # Overrides jwt_expiry_hours when set
    jwt_refresh_hours: int = 168  # 7 days
    bcrypt_rounds: int = 12

    # First-run admin account (optional)
    admin_email: Optional[str] = None
    admin_username: str = "admin"
    admin_password: Optional[str] = None

    # CORS
    cors_allowed_origins: str = "*"

    @property
    def access_ttl_seconds(self) -> int:
        """Lifetime of an access token in seconds."""
        if self.jwt_expiry_seconds is not None:
            return self.jwt_expiry_seconds
        return self.jwt_expiry_hours * 3600

    @property
    def refresh_ttl_seconds(self) -> int:
        """Lifetime of a refresh credential in seconds."""
        return self.jwt_refresh_hours * 3600

    @property
    def cors_allowed_origins_list(self) -> List[str]:
        """Parse comma-separated CORS origins into a list."""
        return [o.strip() for o in self.cors_allowed_origins.split(",") if o.strip()]

    @property
    def postgres_dsn(self) -> str:
        """Build the asyncpg DSN from the DB_* variables."""
        return (
            f"postgresql://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
