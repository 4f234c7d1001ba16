"""
SQLModel database models for photoledger

Defines the two ledger tables: Lead (anonymous, keyed by network address)
and Account (authenticated, keyed by account id).
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Lead(SQLModel, table=True):
    __tablename__ = "leads"

    id: Optional[int] = Field(default=None, primary_key=True)
    ip: str = Field(unique=True, index=True)
    email: Optional[str] = Field(default=None, unique=True, index=True)
    usage_count: int = Field(default=0)
    is_pro: bool = Field(default=False)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: Optional[datetime] = None


class Account(SQLModel, table=True):
    __tablename__ = "accounts"

    id: str = Field(default_factory=lambda: uuid4().hex, primary_key=True)
    email: str = Field(unique=True, index=True)
    password_hash: Optional[str] = None
    tier: str = Field(default="starter")
    tier_name: str = Field(default="Starter")
    images_used: int = Field(default=0)
    images_quota: int = Field(default=50)

    # Stripe linkage; metered_billing_handle is the customer meter events are recorded against
    stripe_customer_id: Optional[str] = Field(default=None, index=True)
    metered_billing_enabled: bool = Field(default=False)
    metered_billing_handle: Optional[str] = None
    metered_subscription_id: Optional[str] = None

    # Session id of the purchase token that created this account; unique so a token is consumed once
    purchase_session_id: Optional[str] = Field(default=None, unique=True)

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: Optional[datetime] = None
