"""
teamctl control API - Main FastAPI Application

Local control plane for one agent team: session lifecycle, teammate
spawn/kill/shutdown, messaging and a per-teammate message stream.

Usage:
    uvicorn teamctl.api.main:create_app --factory --host 127.0.0.1 --port 43779

    or ``teamctl serve``, which also prints the bearer token.

Environment Variables:
    See teamctl.core.config for the full list (TEAMCTL_TOKEN, TEAMCTL_PORT, ...).
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi import HTTPException as FastAPIHTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from teamctl.api import __version__ as api_version
from teamctl.api.dependencies import (
    MAX_BODY_BYTES,
    bearer_token,
    get_session,
    origin_allowed,
    token_matches,
)
from teamctl.api.models import HealthResponse
from teamctl.controller.session import SessionSlot
from teamctl.core.config import ControllerConfig, load_config
from teamctl.core.errors import InvalidNameError, NoActiveSession, TeamCtlError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

CLIENT_ERRORS = (InvalidNameError, NoActiveSession)


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


class BodySizeLimitMiddleware:
    """
    Cap request bodies while they are read.

    Covers chunked uploads that carry no Content-Length; the guard
    middleware rejects declared oversize lengths up front.
    """

    def __init__(self, app: ASGIApp, max_bytes: int = MAX_BODY_BYTES):
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_bytes:
                    raise FastAPIHTTPException(
                        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                        detail="payload_too_large",
                    )
            return message

        await self.app(scope, limited_receive, send)


# ============================================================================
# Lifespan Management
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Sessions are created on demand via POST /session/init; on shutdown the
    active session (if any) is torn down so no teammate outlives the server.
    """
    logger.info("=" * 60)
    logger.info("teamctl control API starting")
    logger.info("=" * 60)

    yield

    logger.info("teamctl control API shutting down")
    await app.state.session.clear()
    logger.info("Shutdown complete")


# ============================================================================
# FastAPI Application
# ============================================================================

def create_app(config: Optional[ControllerConfig] = None) -> FastAPI:
    """Build the control API for ``config`` (default: load_config())."""
    config = config or load_config()

    app = FastAPI(
        title="teamctl control API",
        description="Local control plane for a team of coding agents.",
        version=api_version,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.session = SessionSlot()

    # ========================================================================
    # Middleware
    # ========================================================================

    app.add_middleware(BodySizeLimitMiddleware, max_bytes=MAX_BODY_BYTES)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.allowed_origins),
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    # Registered after CORS, so it runs first.
    @app.middleware("http")
    async def guard(request: Request, call_next):
        origin = request.headers.get("origin")
        if origin is not None and not origin_allowed(origin, config):
            logger.warning(f"Rejected request from origin {origin}")
            return error_response(status.HTTP_403_FORBIDDEN, "invalid_origin")

        if request.method == "OPTIONS":
            return await call_next(request)

        if not token_matches(await bearer_token(request),
                             request.query_params.get("token"), config):
            return _with_cors(error_response(status.HTTP_401_UNAUTHORIZED, "unauthorized"), origin)

        length = request.headers.get("content-length")
        if length is not None and length.isdigit() and int(length) > MAX_BODY_BYTES:
            return _with_cors(error_response(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                                             "payload_too_large"), origin)

        return await call_next(request)

    # ========================================================================
    # Exception Handlers
    # ========================================================================

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request, exc: HTTPException):
        """Handle HTTP exceptions with the ``{"error": ...}`` body."""
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request, exc: RequestValidationError):
        errors = exc.errors()
        if any(error.get("type") == "json_invalid" for error in errors):
            return error_response(status.HTTP_400_BAD_REQUEST, "invalid_json")
        fields = ", ".join(".".join(str(p) for p in error.get("loc", ())[1:]) for error in errors)
        return error_response(status.HTTP_400_BAD_REQUEST, f"invalid_body: {fields}")

    @app.exception_handler(TeamCtlError)
    async def teamctl_exception_handler(request, exc: TeamCtlError):
        if isinstance(exc, CLIENT_ERRORS):
            return error_response(status.HTTP_400_BAD_REQUEST, str(exc))
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))

    @app.exception_handler(Exception)
    async def general_exception_handler(request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.exception("Unhandled exception")
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "internal error")

    # ========================================================================
    # Root Endpoints
    # ========================================================================

    @app.get("/health", tags=["Root"], response_model=HealthResponse)
    async def health_check(request: Request) -> HealthResponse:
        """Liveness plus whether a team session is active."""
        slot: SessionSlot = get_session(request)
        uptime_ms = int((time.time() - slot.started_at) * 1000)
        return HealthResponse(status="ok", uptime=uptime_ms, session=slot.is_active)

    # ========================================================================
    # Router Registration
    # ========================================================================

    from teamctl.api.routers import agents, broadcast, session
    from teamctl.api.websockets import agent_stream

    app.include_router(session.router)
    app.include_router(agents.router)
    app.include_router(broadcast.router)
    app.include_router(agent_stream.router)

    return app


def _with_cors(response: JSONResponse, origin: Optional[str]) -> JSONResponse:
    """Add CORS headers to responses produced before CORSMiddleware runs."""
    if origin is not None:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Vary"] = "Origin"
    return response
