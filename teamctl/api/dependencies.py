"""
FastAPI dependencies and request checks: origin allow-list, bearer token
authentication and access to the session slot.
"""

import logging
import secrets
from typing import Optional

from fastapi import Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.requests import HTTPConnection

from teamctl.controller.session import SessionSlot
from teamctl.core.config import ControllerConfig

logger = logging.getLogger(__name__)

MAX_BODY_BYTES = 1_000_000

# Security
security = HTTPBearer(auto_error=False)


# ============================================================================
# Authentication
# ============================================================================

def origin_allowed(origin: str, config: ControllerConfig) -> bool:
    """Exact match against the configured local origins."""
    return origin in config.allowed_origins


async def bearer_token(connection: HTTPConnection) -> Optional[str]:
    """Token from an ``Authorization: Bearer <token>`` header, if any."""
    credentials: Optional[HTTPAuthorizationCredentials] = await security(connection)
    if credentials is None:
        return None
    return credentials.credentials


def token_matches(token: Optional[str], query_token: Optional[str],
                  config: ControllerConfig) -> bool:
    """
    Check the request's credentials against the configured token.

    The ``?token=`` query parameter is honoured only when
    ``allow_query_token`` is enabled.
    """
    expected = config.token.encode()
    if config.allow_query_token and query_token:
        if secrets.compare_digest(query_token.encode(), expected):
            return True
    if not token:
        return False
    return secrets.compare_digest(token.encode(), expected)


# ============================================================================
# Dependency Injection
# ============================================================================

def get_config(request: Request) -> ControllerConfig:
    return request.app.state.config


def get_session(request: Request) -> SessionSlot:
    """The server's active-session slot."""
    return request.app.state.session
