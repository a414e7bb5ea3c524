"""
restdis server - Redis over a REST API.

This package serves Redis commands over HTTP, compatible with the Upstash
Redis REST API:
- Commands as a JSON array, a URL path, or a pipeline of arrays
- Admin API token, or per-user tokens issued by ACL RESTTOKEN
- Redis 6+ or an in-memory store as backing store

Architecture:
    ┌─────────────┐     ┌──────────────┐     ┌─────────────────┐
    │ REST client │────▶│  FastAPI app │────▶│   Dispatcher    │
    │   (SDK)     │     │ (catch-all)  │     │ parse/auth/exec │
    └─────────────┘     └──────────────┘     └────────┬────────┘
                                                      │ one connection
                                                      ▼ per request
                                      ┌───────────────────────────────┐
                                      │ Backing store (Redis/memory)  │
                                      └───────────────────────────────┘

Invariants:
    - Pipelines are not atomic, each command runs on its own
    - Issued tokens live as long as the server process
    - Store error texts are returned verbatim

How to change safely:
    - Keep request and reply shapes compatible with the Upstash REST API
    - Backends must implement the Connection protocol
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
