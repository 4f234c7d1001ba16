"""
Identity provider for photoledger.

Issues and verifies HS256 access tokens for accounts, and hashes account
passwords. The submission pipeline only needs ``verify_access_token``:
bearer token in, account id (or nothing) out.
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from passlib.context import CryptContext

from core.logging import get_logger

logger = get_logger(__name__)

# Configuration
DEFAULT_JWT_SECRET = "your-secret-key-change-in-production"
JWT_SECRET = os.environ.get("JWT_SECRET", DEFAULT_JWT_SECRET)
JWT_ALGORITHM = "HS256"
JWT_EXPIRY_HOURS = int(os.environ.get("JWT_EXPIRY_HOURS", "24"))

MIN_PASSWORD_LENGTH = 8

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class IdentityProvider:
    """Access token issuer and verifier."""

    def __init__(self, secret: str = JWT_SECRET, expiry_hours: int = JWT_EXPIRY_HOURS):
        self.secret = secret
        self.expiry_hours = expiry_hours

    @property
    def expires_in(self) -> int:
        return self.expiry_hours * 3600

    def create_access_token(self, account_id: str) -> str:
        """Create a JWT access token for ``account_id``."""
        now = datetime.now(timezone.utc)
        payload = {
            "sub": account_id,
            "exp": now + timedelta(hours=self.expiry_hours),
            "iat": now,
        }
        return jwt.encode(payload, self.secret, algorithm=JWT_ALGORITHM)

    def verify_access_token(self, token: str) -> Optional[str]:
        """
        Verify a bearer token.

        Returns:
            The account id, or None if the token is expired or invalid
        """
        try:
            payload = jwt.decode(token, self.secret, algorithms=[JWT_ALGORITHM])
        except jwt.ExpiredSignatureError:
            logger.warning("JWT token expired")
            return None
        except jwt.InvalidTokenError:
            logger.warning("Invalid JWT token")
            return None
        return payload.get("sub")


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return pwd_context.hash(password)


def verify_password(password: str, encoded: str) -> bool:
    """Verify a password against its stored hash; unrecognised hashes never match."""
    try:
        return pwd_context.verify(password, encoded)
    except ValueError:
        logger.warning("Unrecognised password hash format")
        return False


identity_provider = IdentityProvider()
