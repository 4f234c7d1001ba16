"""
Metered Billing Reporter

Reports consumed images to Stripe for accounts enrolled in pay-per-image
metering. Reporting is best-effort: every failure is logged and swallowed,
and nothing here can roll back the ledger increment or the processed image
already returned to the user. Discrepancies are reconciled out-of-band.

Example usage:
    background_tasks.add_task(report_noncritical, account.metered_billing_handle, 1, usage_id)
"""

from typing import Optional

import stripe

from core.billing import STRIPE_METER_EVENT_NAME, STRIPE_SECRET_KEY
from core.logging import get_logger

logger = get_logger(__name__)


class MeteredBillingReporter:
    """
    Record billable units as Stripe billing meter events.

    The meter handle is the Stripe customer id the metered subscription
    belongs to. ``identifier`` lets Stripe drop duplicate deliveries of the
    same unit, which makes retries safe.
    """

    def __init__(self, api_key: Optional[str] = STRIPE_SECRET_KEY, event_name: str = STRIPE_METER_EVENT_NAME):
        self.api_key = api_key
        self.event_name = event_name

    def report(self, meter_handle: Optional[str], quantity: int = 1, identifier: Optional[str] = None) -> bool:
        """
        Report ``quantity`` units against ``meter_handle``.

        Args:
            meter_handle: Stripe customer id of the metered subscription
            quantity: Units consumed
            identifier: Idempotency identifier for this unit

        Returns:
            True if Stripe accepted the event, False otherwise (already logged)
        """
        if not self.api_key:
            logger.error("Stripe not configured - cannot report metered usage",
                         extra={"meter_handle": meter_handle})
            return False

        if not meter_handle:
            logger.error("Metered account has no billing handle; usage not reported")
            return False

        params = {
            "event_name": self.event_name,
            "payload": {"stripe_customer_id": meter_handle, "value": str(quantity)},
            "api_key": self.api_key,
        }
        if identifier:
            params["identifier"] = identifier

        try:
            stripe.billing.MeterEvent.create(**params)
        except stripe.StripeError as e:
            logger.error(f"Stripe error reporting metered usage: {e}",
                         extra={"meter_handle": meter_handle, "quantity": quantity})
            return False
        except Exception as e:
            logger.error(f"Error reporting metered usage: {e}",
                         extra={"meter_handle": meter_handle, "quantity": quantity})
            return False

        logger.info(f"Reported {quantity} metered unit(s)",
                    extra={"meter_handle": meter_handle, "identifier": identifier})
        return True


_reporter: Optional[MeteredBillingReporter] = None


def get_reporter() -> MeteredBillingReporter:
    """Process-wide reporter instance."""
    global _reporter
    if _reporter is None:
        _reporter = MeteredBillingReporter()
    return _reporter


def report_noncritical(meter_handle: Optional[str], quantity: int = 1, identifier: Optional[str] = None) -> None:
    """
    Fire-and-forget wrapper for background tasks.

    Never raises; the result is only visible in the logs.
    """
    try:
        get_reporter().report(meter_handle, quantity=quantity, identifier=identifier)
    except Exception:
        logger.exception("Metered usage report crashed", extra={"meter_handle": meter_handle})
