"""
Current User Middleware

Extracts the bearer token from each request and records who the caller is
on ``request.state``:

- ``account_id``: verified account id, or None for anonymous callers
- ``client_ip``: network address anonymous leads are keyed by
- ``token_invalid``: True when a token was sent but failed verification

Example usage:
    app.add_middleware(CurrentUserMiddleware)

    # In route handlers:
    caller = get_caller(request)
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, Request
from starlette.middleware.base import BaseHTTPMiddleware

from auth.provider import IdentityProvider, identity_provider
from core.logging import get_client_ip, get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Caller:
    account_id: Optional[str]
    client_ip: str
    token_invalid: bool = False


class CurrentUserMiddleware(BaseHTTPMiddleware):
    """Middleware for extracting and validating bearer tokens."""

    def __init__(self, app, provider: Optional[IdentityProvider] = None):
        super().__init__(app)
        self.provider = provider or identity_provider

    async def dispatch(self, request: Request, call_next):
        request.state.client_ip = get_client_ip(request)
        request.state.account_id = None
        request.state.token_invalid = False

        token = extract_token(request)
        if token:
            account_id = self.provider.verify_access_token(token)
            if account_id:
                request.state.account_id = account_id
                logger.debug(f"Authenticated account: {account_id}")
            else:
                request.state.token_invalid = True

        return await call_next(request)


def extract_token(request: Request) -> Optional[str]:
    """
    Extract the access token from the Authorization header.

    Falls back to ``X-Auth-Token`` for API clients that cannot set
    Authorization.
    """
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None

    return request.headers.get("X-Auth-Token") or None


def get_caller(request: Request) -> Caller:
    """
    Dependency returning the caller recorded by the middleware.

    Raises:
        HTTPException: 401 when a bearer token was sent but is invalid
    """
    if getattr(request.state, "token_invalid", False):
        raise HTTPException(
            status_code=401,
            detail={"error": "INVALID_TOKEN", "message": "Invalid or expired access token"},
            headers={"WWW-Authenticate": "Bearer"}
        )
    return Caller(
        account_id=getattr(request.state, "account_id", None),
        client_ip=getattr(request.state, "client_ip", None) or get_client_ip(request),
    )


def require_account(request: Request) -> Caller:
    """Dependency for routes that need an authenticated account."""
    caller = get_caller(request)
    if not caller.account_id:
        raise HTTPException(
            status_code=401,
            detail={"error": "UNAUTHORIZED", "message": "Authentication required"},
            headers={"WWW-Authenticate": "Bearer"}
        )
    return caller
