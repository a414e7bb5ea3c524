"""
E2E test fixtures for restdis.

These tests require a running Redis 6+ whose default user has full
access, e.g. `docker run -p 6379:6379 redis:7`.
"""

import os
import uuid

import pytest

REDIS_ADDR = os.environ.get("RESTDIS_TEST_REDIS_ADDR", "")


def pytest_collection_modifyitems(config, items):
    if REDIS_ADDR:
        return
    skip = pytest.mark.skip(reason="E2E tests disabled. Set RESTDIS_TEST_REDIS_ADDR to enable.")
    for item in items:
        if os.sep + "e2e" + os.sep in str(item.path):
            item.add_marker(skip)


@pytest.fixture
def redis_addr() -> str:
    return REDIS_ADDR


@pytest.fixture
def key_prefix() -> str:
    """Unique prefix so tests never collide with existing data."""
    return f"restdis-test:{uuid.uuid4().hex[:8]}:"
