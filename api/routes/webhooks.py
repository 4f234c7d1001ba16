"""
Stripe Webhook Route

    POST /api/webhooks/stripe

Moves the usage ledger in response to subscription lifecycle events:

- ``invoice.payment_succeeded``: monthly renewal, usage reset to zero
- ``customer.subscription.deleted``: downgrade to the Starter tier
- ``checkout.session.completed`` with ``type=pay_per_image`` metadata:
  enable metered billing against the paying customer

The account is found through ``metadata.userId`` on the event object, falling
back to the stored Stripe customer id.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from core.billing import DEFAULT_TIER, default_tier
from core.db import get_db_session, get_session_factory
from core.logging import get_logger
from core.models_sql import Account
from core.stripe_util import PAY_PER_IMAGE_TYPE, handle_stripe_webhook

logger = get_logger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    factory: async_sessionmaker = Depends(get_session_factory)
):
    """
    Handle a Stripe webhook delivery.

    Example:
        POST /api/webhooks/stripe (called by Stripe)
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    if not signature:
        raise HTTPException(status_code=400, detail="Missing Stripe signature")

    event = handle_stripe_webhook(payload, signature)
    if not event:
        raise HTTPException(status_code=400, detail="Webhook signature verification failed")

    event_type = event["type"]
    event_data = event["data"]["object"]
    logger.info(f"Processing webhook event: {event_type}")

    async with get_db_session(factory) as session:
        if event_type == "invoice.payment_succeeded":
            await handle_payment_succeeded(session, event_data)
        elif event_type == "customer.subscription.deleted":
            await handle_subscription_deleted(session, event_data)
        elif event_type == "checkout.session.completed":
            await handle_checkout_completed(session, event_data)
        else:
            logger.info(f"Unhandled webhook event type: {event_type}")

    return {"received": True, "event_type": event_type}


async def find_account(session: AsyncSession, data: Dict[str, Any]) -> Optional[Account]:
    """Resolve the account an event object refers to."""
    metadata = data.get("metadata") or {}
    user_id = metadata.get("userId")
    if user_id:
        account = await session.get(Account, user_id)
        if account is not None:
            return account

    customer_id = data.get("customer")
    if customer_id:
        result = await session.execute(select(Account).where(Account.stripe_customer_id == customer_id))
        return result.scalars().first()
    return None


async def handle_payment_succeeded(session: AsyncSession, invoice: Dict[str, Any]) -> None:
    """Reset usage at the start of a paid subscription period."""
    if not invoice.get("subscription"):
        return

    account = await find_account(session, invoice)
    if account is None:
        logger.info(f"No account found for invoice {invoice.get('id')}")
        return

    account.images_used = 0
    account.updated_at = datetime.now(timezone.utc)
    session.add(account)
    logger.info(f"Reset usage for account {account.id} (invoice paid)")


async def handle_subscription_deleted(session: AsyncSession, subscription: Dict[str, Any]) -> None:
    """Downgrade a cancelled subscriber to the Starter tier."""
    account = await find_account(session, subscription)
    if account is None:
        logger.info(f"No account found for subscription {subscription.get('id')}")
        return

    tier = default_tier()
    account.tier = DEFAULT_TIER
    account.tier_name = tier["name"]
    account.images_quota = tier["images"]
    account.updated_at = datetime.now(timezone.utc)
    session.add(account)
    logger.info(f"Downgraded account {account.id} to {tier['name']} (subscription deleted)")


async def handle_checkout_completed(session: AsyncSession, checkout: Dict[str, Any]) -> None:
    """Enable metered billing after a pay-per-image checkout."""
    metadata = checkout.get("metadata") or {}
    if metadata.get("type") != PAY_PER_IMAGE_TYPE:
        logger.info(f"Checkout completed: {checkout.get('id')}")
        return

    customer_id = checkout.get("customer")
    account = await find_account(session, checkout)
    if account is None or not customer_id:
        logger.warning(f"Pay-per-image checkout {checkout.get('id')} has no matching account")
        return

    account.stripe_customer_id = customer_id
    account.metered_billing_enabled = True
    account.metered_billing_handle = customer_id
    account.metered_subscription_id = checkout.get("subscription") or account.metered_subscription_id
    account.updated_at = datetime.now(timezone.utc)
    session.add(account)
    logger.info(f"Enabled metered billing for account {account.id}")
