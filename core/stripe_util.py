"""
Stripe Integration Utilities

Webhook verification for the subscription lifecycle events that move the
usage ledger (renewals, cancellations, pay-per-image enrolment), and the
Stripe calls that enrol an account in pay-per-image metering.

Example usage:
    event = handle_stripe_webhook(payload, signature)
    if event and event['type'] == 'invoice.payment_succeeded':
        ...
"""

import json
from typing import Any, Dict, Optional

import stripe

from core.billing import STRIPE_PRICE_PAY_PER_IMAGE_METERED, STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET
from core.logging import get_logger

logger = get_logger(__name__)

if STRIPE_SECRET_KEY:
    stripe.api_key = STRIPE_SECRET_KEY
else:
    logger.warning("STRIPE_SECRET_KEY not configured - Stripe functionality disabled")


PAY_PER_IMAGE_TYPE = "pay_per_image"


def pay_per_image_metadata(account_id: Optional[str]) -> Dict[str, str]:
    """Metadata the webhook uses to recognise and attribute a pay-per-image enrolment."""
    metadata = {"type": PAY_PER_IMAGE_TYPE}
    if account_id:
        metadata["userId"] = account_id
    return metadata


def create_pay_per_image_subscription(
    customer_id: str,
    account_id: str,
    price_id: str = STRIPE_PRICE_PAY_PER_IMAGE_METERED
) -> Optional[Dict[str, str]]:
    """
    Start a metered subscription for a customer whose card is already on file.

    Returns:
        ``{subscription_id, subscription_item_id}`` or None if Stripe refused

    Example:
        >>> ids = create_pay_per_image_subscription("cus_123", account.id)
    """
    if not STRIPE_SECRET_KEY:
        logger.error("Stripe not configured - cannot create metered subscription")
        return None

    try:
        subscription = stripe.Subscription.create(
            customer=customer_id,
            items=[{"price": price_id}],
            metadata=pay_per_image_metadata(account_id),
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe error creating metered subscription: {e}")
        return None

    return {
        "subscription_id": subscription["id"],
        "subscription_item_id": subscription["items"]["data"][0]["id"],
    }


def create_pay_per_image_checkout(
    account_id: Optional[str],
    success_url: str,
    cancel_url: str,
    price_id: str = STRIPE_PRICE_PAY_PER_IMAGE_METERED
) -> Optional[Dict[str, str]]:
    """
    Create a Checkout session that collects a card and starts metered billing.

    Metered prices carry no quantity; usage arrives later as meter events.

    Returns:
        ``{id, url}`` of the session or None if Stripe refused
    """
    if not STRIPE_SECRET_KEY:
        logger.error("Stripe not configured - cannot create checkout session")
        return None

    metadata = pay_per_image_metadata(account_id)
    try:
        session = stripe.checkout.Session.create(
            mode="subscription",
            line_items=[{"price": price_id}],
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
            subscription_data={"metadata": metadata},
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe error creating pay-per-image checkout: {e}")
        return None

    logger.info(f"Created pay-per-image checkout session {session['id']}")
    return {"id": session["id"], "url": session["url"]}


def handle_stripe_webhook(
    payload: bytes,
    sig_header: Optional[str],
    webhook_secret: Optional[str] = STRIPE_WEBHOOK_SECRET
) -> Optional[Dict[str, Any]]:
    """
    Verify and parse a Stripe webhook delivery.

    Args:
        payload: Raw request body
        sig_header: ``Stripe-Signature`` header value
        webhook_secret: Endpoint signing secret

    Returns:
        The verified event, or None if verification failed

    Example:
        >>> event = handle_stripe_webhook(await request.body(), request.headers.get('stripe-signature'))
    """
    if not webhook_secret:
        logger.error("STRIPE_WEBHOOK_SECRET not configured")
        return None

    if not sig_header:
        logger.warning("Webhook delivery without Stripe-Signature header")
        return None

    try:
        event = stripe.Webhook.construct_event(payload, sig_header, webhook_secret)
    except ValueError as e:
        logger.error(f"Invalid webhook payload: {e}")
        return None
    except stripe.SignatureVerificationError as e:
        logger.error(f"Invalid webhook signature: {e}")
        return None

    logger.info(f"Verified webhook event: {event['type']}")
    # Plain dict of the verified body; handlers only read it
    return json.loads(payload)


def is_payments_configured() -> bool:
    """Check whether Stripe API calls can be made."""
    return bool(STRIPE_SECRET_KEY)


def is_stripe_configured() -> bool:
    """Check whether both the API key and the webhook secret are available."""
    return bool(STRIPE_SECRET_KEY and STRIPE_WEBHOOK_SECRET)
