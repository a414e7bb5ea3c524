"""
Configuration for the restdis REST server.

Uses pydantic-settings for environment variable loading. Command-line
flags override the environment (see main.py).

Invariants:
    - An admin API token and a backing store address are always required
    - Secrets are never logged or exposed in error messages
"""

from __future__ import annotations

import logging

from pydantic import Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

# Backing address selecting the in-process store
MEMORY_ADDR = "memory"


class Settings(BaseSettings):
    """REST server configuration loaded from environment."""

    # Web server
    host: str = Field(default="127.0.0.1", description="REST server bind host")
    port: int = Field(default=8080, description="REST server bind port")
    api_token: str = Field(default="", description="Admin API token accepted as Bearer credential")
    cors_origins: list[str] = Field(default=[], description="Allowed CORS origins, none if empty")

    # Backing store
    redis_addr: str = Field(default="", description="Redis host:port, or 'memory'")
    redis_username: str | None = Field(default=None, description="Username for the Redis connection")
    redis_password: str | None = Field(default=None, description="Password for the Redis connection")
    redis_db: int = Field(default=0, description="Redis database number")
    redis_connect_timeout: float = Field(default=5.0, description="Redis connect timeout seconds")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="Log format (text, json)")

    model_config = {"env_prefix": "RESTDIS_"}

    @property
    def bind_address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def uses_memory_store(self) -> bool:
        return self.redis_addr == MEMORY_ADDR

    def validate_settings(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.api_token:
            raise ValueError("no API token provided (--api-token or RESTDIS_API_TOKEN)")
        if not self.redis_addr:
            raise ValueError("no Redis address provided (--redis-addr or RESTDIS_REDIS_ADDR)")
        if self.log_format not in ("text", "json"):
            raise ValueError(f"Invalid log format '{self.log_format}'. Must be one of: text, json")

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Server configuration loaded",
            extra={
                "bind_address": self.bind_address,
                "redis_addr": self.redis_addr,
                "redis_username": self.redis_username,
                "redis_db": self.redis_db,
                "cors_origins": self.cors_origins,
                "log_level": self.log_level,
            },
        )
