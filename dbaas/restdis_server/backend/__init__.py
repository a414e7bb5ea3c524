"""
Backing store connections for the REST server.

This module provides the pluggable store interface:
- Redis 6+ (production)
- In-memory (for testing and local development)

The REST server acquires one Connection per request from a
ConnectionFactory and closes it when the request ends.

Invariants:
    - Connections are never shared between requests
    - Error replies keep the store's message verbatim

How to change safely:
    - New backends must implement the Connection protocol
    - Keep the memory store's error texts identical to Redis
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .base import (
    BackendConnectionError,
    BackendError,
    Connection,
    ConnectionFactory,
    ReplyError,
    normalize_arg,
)
from .memory import MemoryConnection, MemoryStore
from .redis_conn import RedisConnection, redis_connection_factory

if TYPE_CHECKING:
    from ..config import Settings

logger = logging.getLogger(__name__)


def build_connection_factory(settings: Settings) -> ConnectionFactory:
    """Create the connection factory selected by the settings.

    Args:
        settings: Server settings

    Returns:
        A MemoryStore factory if redis_addr is 'memory', else a Redis one
    """
    if settings.uses_memory_store:
        logger.info("Using in-memory backing store")
        return MemoryStore().connect

    logger.info(f"Using Redis backing store at {settings.redis_addr}")
    return redis_connection_factory(
        settings.redis_addr,
        username=settings.redis_username,
        password=settings.redis_password,
        db=settings.redis_db,
        connect_timeout=settings.redis_connect_timeout,
    )


__all__ = [
    # Protocol and types
    "Connection",
    "ConnectionFactory",
    "BackendError",
    "BackendConnectionError",
    "ReplyError",
    "normalize_arg",
    # Factory
    "build_connection_factory",
    # Implementations
    "MemoryStore",
    "MemoryConnection",
    "RedisConnection",
    "redis_connection_factory",
]
