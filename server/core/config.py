"""Environment-driven configuration with Pydantic v2."""

from typing import Dict, List, Literal, Optional
from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Server Configuration
    host: str = Field(default="127.0.0.1", env="HOST")
    port: int = Field(default=8000, env="PORT", ge=1024, le=65535)
    debug: bool = Field(default=False, env="DEBUG")
    workers: int = Field(default=1, env="WORKERS", ge=1, le=8)
    cors_origins: List[str] = Field(default=["http://localhost:3000"], env="CORS_ORIGINS")

    # Database Configuration
    database_url: str = Field(default="sqlite+aiosqlite:///./data/storefront.db", env="DATABASE_URL")
    database_echo: bool = Field(default=False, env="DATABASE_ECHO")
    database_pool_size: int = Field(default=20, env="DATABASE_POOL_SIZE", ge=1, le=100)
    database_max_overflow: int = Field(default=30, env="DATABASE_MAX_OVERFLOW", ge=0, le=100)

    # Cache Configuration
    redis_url: Optional[str] = Field(default=None, env="REDIS_URL")
    redis_enabled: bool = Field(default=False, env="REDIS_ENABLED")
    redis_socket_timeout: float = Field(default=5.0, env="REDIS_SOCKET_TIMEOUT", gt=0, le=60)
    cache_key_prefix: str = Field(default="query:", env="CACHE_KEY_PREFIX", min_length=1)

    # TTL tiers (seconds)
    cache_ttl_short: int = Field(default=60, env="CACHE_TTL_SHORT", ge=1)
    cache_ttl_medium: int = Field(default=300, env="CACHE_TTL_MEDIUM", ge=1)
    cache_ttl_long: int = Field(default=3600, env="CACHE_TTL_LONG", ge=1)
    cache_ttl_extended: int = Field(default=86400, env="CACHE_TTL_EXTENDED", ge=1)

    # Default tier per table; tables not listed use MEDIUM
    table_ttl_tiers: Dict[str, Literal["short", "medium", "long", "extended"]] = Field(
        default={
            "products": "medium",
            "categories": "long",
            "carts": "short",
            "cart_items": "short",
            "inventory": "short",
            "ui_sections": "long",
            "language_packs": "extended",
        },
        env="TABLE_TTL_TIERS",
    )

    # Logging
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    log_format: str = Field(default="json", env="LOG_FORMAT")
    log_file: Optional[str] = Field(default=None, env="LOG_FILE")

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Ensure database directory exists for SQLite."""
        if v and v.startswith("sqlite"):
            if ":///" in v:
                db_path = v.split("///")[1]
                if db_path and db_path != ":memory:":
                    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return v

    @field_validator("cache_ttl_long")
    @classmethod
    def validate_tier_order(cls, v, info):
        """Tiers must not shrink as volatility drops."""
        short = info.data.get("cache_ttl_short")
        medium = info.data.get("cache_ttl_medium")
        if short is not None and medium is not None and not (short <= medium <= v):
            raise ValueError("cache TTL tiers must satisfy short <= medium <= long")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.debug

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return not self.debug

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "forbid",
        "env_parse_none_str": "none",
        "env_nested_delimiter": "__",
    }
