"""
HTTP server for the Redis REST API.

This module exposes the Dispatcher as a FastAPI application. Every path
and method goes to a single catch-all route, since the command is encoded
in the path itself.

Invariants:
    - Responses are JSON, except 405 which has no body
    - The dispatcher and token store belong to the application instance

How to change safely:
    - Keep routing in the dispatcher, not in FastAPI routes
    - Test with httpx.ASGITransport, no network needed
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.requests import ClientDisconnect

from ..backend.base import ConnectionFactory
from ..config import Settings
from .dispatcher import BodyReadError, Dispatcher, RestRequest
from .tokens import TokenStore

logger = logging.getLogger(__name__)

ROUTE_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


def create_app(
    settings: Settings,
    connection_factory: ConnectionFactory,
    token_store: TokenStore | None = None,
) -> FastAPI:
    """Create the REST API application.

    Args:
        settings: Server settings (admin token, CORS origins)
        connection_factory: Coroutine function returning a new Connection
        token_store: Optional token store, a new one is created if omitted

    Returns:
        FastAPI application instance
    """
    dispatcher = Dispatcher(
        api_token=settings.api_token,
        connection_factory=connection_factory,
        tokens=token_store,
    )

    app = FastAPI(
        title="restdis",
        description="Redis REST API compatible with the Upstash REST protocol",
        version="1.0.0",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.dispatcher = dispatcher
    app.state.token_store = dispatcher.tokens

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_methods=["GET", "POST"],
            allow_headers=["Authorization", "Content-Type"],
        )

    @app.api_route("/{path:path}", methods=ROUTE_METHODS)
    async def handle_command(request: Request) -> Response:
        async def read_body() -> bytes:
            try:
                return await request.body()
            except ClientDisconnect as e:
                raise BodyReadError("client disconnected while sending the body") from e

        reply = await dispatcher.dispatch(
            RestRequest(
                method=request.method,
                path=request.scope["path"],
                query=request.scope["query_string"].decode("latin-1"),
                headers=request.headers,
                read_body=read_body,
            )
        )
        if reply.payload is None:
            return Response(status_code=reply.status)
        return JSONResponse(reply.payload, status_code=reply.status)

    return app
