"""
restdis Test Suite.

This package contains:
- unit/: Unit tests (no external dependencies)
- integration/: Server and client tests over ASGI, in-memory store
- e2e/: End-to-end tests against a real Redis (RESTDIS_TEST_REDIS_ADDR)
"""
