"""
Purchase token codec for the simulated checkout path.

A purchase token is a self-contained, encrypted receipt (tier, images
granted, price, expiry, payment status) that lets a purchase be handed to a
not-yet-registered account without a database round trip.

Tokens are sealed with AES-256-GCM under a key derived from the server
secret. Each token gets a fresh random nonce, so identical receipts never
produce identical tokens, and the GCM tag rejects any modified token.

Business validation (paid, not expired) is not part of the
codec; see ``check_purchase``.

Example usage:
    codec = SessionTokenCodec()
    token = codec.encrypt(build_purchase("pro_100"))
    fields = codec.decrypt(token)
    reason = check_purchase(fields)
"""

import base64
import hashlib
import os
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from pydantic import BaseModel, Field

from core.billing import get_tier
from core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SESSION_KEY = "photoledger-default-key-change-in-prod"
SESSION_ENCRYPTION_KEY = os.environ.get("SESSION_ENCRYPTION_KEY", DEFAULT_SESSION_KEY)
PURCHASE_TOKEN_TTL_MINUTES = int(os.environ.get("PURCHASE_TOKEN_TTL_MINUTES", "30"))

NONCE_SIZE = 12
TAG_SIZE = 16
TOKEN_AAD = b"photoledger.purchase.v1"

# Invalidity reasons surfaced to clients
REASON_MALFORMED = "malformed"
REASON_EXPIRED = "expired"
REASON_NOT_PAID = "not paid"


class PurchaseFields(BaseModel):
    """Decoded contents of a purchase token."""
    session_id: str
    tier: str
    tier_name: str
    images_granted: int = Field(gt=0)
    price: Decimal
    payment_status: str
    created_at: datetime
    expires_at: datetime


class SessionTokenCodec:
    """Encrypt and decrypt purchase tokens with a server-held secret."""

    def __init__(self, secret: str = SESSION_ENCRYPTION_KEY):
        key = hashlib.sha256(secret.encode("utf-8")).digest()
        self._aead = AESGCM(key)

    def encrypt(self, fields: PurchaseFields) -> str:
        """
        Seal ``fields`` into a URL-safe token string.

        Args:
            fields: Purchase receipt to encode

        Returns:
            Unpadded URL-safe base64 of ``nonce || ciphertext || tag``
        """
        nonce = os.urandom(NONCE_SIZE)
        sealed = self._aead.encrypt(nonce, fields.model_dump_json().encode("utf-8"), TOKEN_AAD)
        return base64.urlsafe_b64encode(nonce + sealed).rstrip(b"=").decode("ascii")

    def decrypt(self, token: str) -> Optional[PurchaseFields]:
        """
        Open a token produced by ``encrypt``.

        Args:
            token: Token string

        Returns:
            The purchase fields, or None for anything malformed, tampered
            with, or sealed under a different secret
        """
        try:
            raw = base64.urlsafe_b64decode(token + "=" * (-len(token) % 4))
            if len(raw) <= NONCE_SIZE + TAG_SIZE:
                return None
            plaintext = self._aead.decrypt(raw[:NONCE_SIZE], raw[NONCE_SIZE:], TOKEN_AAD)
            return PurchaseFields.model_validate_json(plaintext)
        except (InvalidTag, ValueError, TypeError, AttributeError):
            return None


def build_purchase(
    tier_key: str,
    quantity: int = 1,
    now: Optional[datetime] = None,
    payment_status: str = "paid"
) -> PurchaseFields:
    """
    Build the receipt for a simulated purchase of ``quantity`` x ``tier_key``.

    Raises:
        ValueError: If the tier is unknown or quantity is not positive
    """
    tier = get_tier(tier_key)
    if tier is None:
        raise ValueError(f"Invalid tier: {tier_key}")
    if quantity < 1:
        raise ValueError("Quantity must be at least 1")

    now = now or datetime.now(timezone.utc)
    return PurchaseFields(
        session_id=f"sim_{uuid.uuid4()}",
        tier=tier_key,
        tier_name=tier["name"],
        images_granted=tier["images"] * quantity,
        price=tier["price_eur"] * quantity,
        payment_status=payment_status,
        created_at=now,
        expires_at=now + timedelta(minutes=PURCHASE_TOKEN_TTL_MINUTES),
    )


def check_purchase(fields: PurchaseFields, now: Optional[datetime] = None) -> Optional[str]:
    """
    Validate a decoded receipt.

    Returns:
        None if the purchase may be redeemed, otherwise ``"expired"`` or ``"not paid"``
    """
    now = now or datetime.now(timezone.utc)
    expires_at = fields.expires_at
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)

    if now >= expires_at:
        return REASON_EXPIRED
    if fields.payment_status != "paid":
        return REASON_NOT_PAID
    return None
