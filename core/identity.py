"""
Caller identities and their ledger state.

A caller is either an anonymous lead (keyed by network address) or an
authenticated account (keyed by account id). An authenticated caller whose
ledger row cannot be found is represented by ``UnknownAccount`` so the gate
can refuse it explicitly.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from core.logging import get_logger
from core.models_sql import Account, Lead

logger = get_logger(__name__)


@dataclass(frozen=True)
class AnonymousLead:
    network_address: str
    email: Optional[str] = None
    usage_count: int = 0
    is_pro: bool = False


@dataclass(frozen=True)
class AuthenticatedAccount:
    id: str
    images_used: int
    images_quota: int
    tier: str
    metered_billing_enabled: bool = False
    metered_billing_handle: Optional[str] = None


@dataclass(frozen=True)
class UnknownAccount:
    id: str


Identity = Union[AnonymousLead, AuthenticatedAccount, UnknownAccount]


@dataclass(frozen=True)
class LedgerRef:
    """Names the counter an increment applies to."""
    kind: str  # "account" or "lead"
    key: str

    @classmethod
    def for_identity(cls, identity: Identity) -> "LedgerRef":
        if isinstance(identity, AnonymousLead):
            return cls("lead", identity.network_address)
        return cls("account", identity.id)


def lead_identity(row: Lead) -> AnonymousLead:
    return AnonymousLead(
        network_address=row.ip,
        email=row.email,
        usage_count=row.usage_count or 0,
        is_pro=bool(row.is_pro),
    )


def account_identity(row: Account) -> AuthenticatedAccount:
    return AuthenticatedAccount(
        id=row.id,
        images_used=row.images_used or 0,
        images_quota=row.images_quota,
        tier=row.tier,
        metered_billing_enabled=bool(row.metered_billing_enabled),
        metered_billing_handle=row.metered_billing_handle,
    )


async def get_or_create_lead(session: AsyncSession, ip: str) -> Lead:
    """
    Fetch the lead row for ``ip``, creating an empty one on first sight.

    A concurrent first request for the same address may win the insert; the
    unique constraint on ``ip`` turns that into a re-read.
    """
    result = await session.execute(select(Lead).where(Lead.ip == ip))
    lead = result.scalar_one_or_none()
    if lead is not None:
        return lead

    lead = Lead(ip=ip)
    session.add(lead)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        result = await session.execute(select(Lead).where(Lead.ip == ip))
        return result.scalar_one()

    logger.info("Created lead row", extra={"client_ip": ip})
    return lead


async def load_identity(
    session: AsyncSession,
    account_id: Optional[str],
    client_ip: str
) -> Identity:
    """
    Resolve the caller into an Identity.

    Args:
        session: Open database session
        account_id: Verified account id from the bearer token, if any
        client_ip: Caller network address, used when unauthenticated

    Returns:
        AuthenticatedAccount, UnknownAccount or AnonymousLead
    """
    if account_id:
        account = await session.get(Account, account_id)
        if account is None:
            return UnknownAccount(id=account_id)
        return account_identity(account)

    return lead_identity(await get_or_create_lead(session, client_ip))


async def register_lead_email(session: AsyncSession, ip: str, email: str) -> bool:
    """
    Attach ``email`` to the lead for ``ip``.

    Re-registering from a known address replaces the email but keeps the
    usage count, so a new address book entry does not reset the trial.

    Returns:
        False if the email already belongs to a lead at another address
    """
    existing = await session.execute(select(Lead).where(Lead.email == email))
    owner = existing.scalar_one_or_none()
    if owner is not None:
        return owner.ip == ip

    lead = await get_or_create_lead(session, ip)
    lead.email = email
    lead.updated_at = datetime.now(timezone.utc)
    session.add(lead)
    await session.commit()
    return True
