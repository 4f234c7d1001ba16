"""
photoledger Billing and Pricing Configuration

This module defines the purchasable tiers, the anonymous trial allowance and
the Stripe settings used by the checkout, webhook and metering paths.

Example usage:
    tier = get_tier('pro_100')
    print(f"Images granted: {tier['images']}")
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional
import os


class TierKey(str, Enum):
    """Purchasable tiers."""
    STARTER = "starter"
    PRO_100 = "pro_100"
    PRO_200 = "pro_200"
    PRO_300 = "pro_300"
    PRO_400 = "pro_400"
    PRO_500 = "pro_500"
    PRO_1000 = "pro_1000"
    PAY_PER_IMAGE = "pay_per_image"


# Images an anonymous lead may process before it has to buy a plan.
FREE_TRIAL_LIMIT = int(os.environ.get("FREE_TRIAL_LIMIT", "3"))

# Tier an account falls back to when its subscription is cancelled.
DEFAULT_TIER = TierKey.STARTER.value

TIERS: Dict[str, Dict[str, Any]] = {
    "starter": {
        "name": "Starter",
        "images": 50,
        "price_eur": Decimal("16.99"),
        "stripe_price_id": os.environ.get("STRIPE_PRICE_STARTER", "price_starter"),
    },
    "pro_100": {
        "name": "Pro 100",
        "images": 100,
        "price_eur": Decimal("29.99"),
        "stripe_price_id": os.environ.get("STRIPE_PRICE_PRO_100", "price_pro_100"),
    },
    "pro_200": {
        "name": "Pro 200",
        "images": 200,
        "price_eur": Decimal("54.99"),
        "stripe_price_id": os.environ.get("STRIPE_PRICE_PRO_200", "price_pro_200"),
    },
    "pro_300": {
        "name": "Pro 300",
        "images": 300,
        "price_eur": Decimal("74.99"),
        "stripe_price_id": os.environ.get("STRIPE_PRICE_PRO_300", "price_pro_300"),
    },
    "pro_400": {
        "name": "Pro 400",
        "images": 400,
        "price_eur": Decimal("91.99"),
        "stripe_price_id": os.environ.get("STRIPE_PRICE_PRO_400", "price_pro_400"),
    },
    "pro_500": {
        "name": "Pro 500",
        "images": 500,
        "price_eur": Decimal("104.99"),
        "stripe_price_id": os.environ.get("STRIPE_PRICE_PRO_500", "price_pro_500"),
    },
    "pro_1000": {
        "name": "Pro 1000",
        "images": 1000,
        "price_eur": Decimal("189.99"),
        "stripe_price_id": os.environ.get("STRIPE_PRICE_PRO_1000", "price_pro_1000"),
    },
    "pay_per_image": {
        "name": "Pay Per Image",
        "images": 1,
        "price_eur": Decimal("0.69"),
        "stripe_price_id": os.environ.get("STRIPE_PRICE_PAY_PER_IMAGE", "price_single"),
    },
}


def get_tier(tier_key: str) -> Optional[Dict[str, Any]]:
    """
    Get tier configuration by key.

    Args:
        tier_key: Tier identifier (starter, pro_100, ..., pay_per_image)

    Returns:
        Tier configuration dictionary or None if not found

    Example:
        >>> get_tier('starter')['images']
        50
    """
    return TIERS.get(tier_key)


def default_tier() -> Dict[str, Any]:
    """Configuration of the tier cancelled subscriptions are downgraded to."""
    return TIERS[DEFAULT_TIER]


# Environment variables for Stripe configuration
STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET")
STRIPE_METER_EVENT_NAME = os.environ.get("STRIPE_METER_EVENT_NAME", "image_processed")

# Metered price behind pay-per-image subscriptions; each meter event is billed at this price
STRIPE_PRICE_PAY_PER_IMAGE_METERED = os.environ.get(
    "STRIPE_PRICE_PAY_PER_IMAGE_METERED", "price_pay_per_image_metered"
)
