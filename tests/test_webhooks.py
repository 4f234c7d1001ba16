"""
Stripe Webhook Tests

Signature verification is exercised directly against
``handle_stripe_webhook``; the route tests patch verification and feed
event payloads through the API.

Example usage:
    pytest tests/test_webhooks.py -v
"""

import hashlib
import hmac
import json
import time
from unittest.mock import patch

from core.stripe_util import handle_stripe_webhook

SECRET = "whsec_test_secret"
SIGNATURE = {"stripe-signature": "t=1,v1=fake"}


def sign(payload: bytes, secret: str = SECRET) -> str:
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def event(event_type, obj):
    return {"id": "evt_1", "object": "event", "type": event_type, "data": {"object": obj}}


class TestSignatureVerification:

    def test_valid_signature(self):
        payload = json.dumps(event("invoice.payment_succeeded", {"id": "in_1"})).encode()

        verified = handle_stripe_webhook(payload, sign(payload), webhook_secret=SECRET)

        assert verified["type"] == "invoice.payment_succeeded"
        assert verified["data"]["object"]["id"] == "in_1"

    def test_wrong_secret(self):
        payload = json.dumps(event("invoice.payment_succeeded", {"id": "in_1"})).encode()

        assert handle_stripe_webhook(payload, sign(payload, "whsec_other"), webhook_secret=SECRET) is None

    def test_missing_header(self):
        assert handle_stripe_webhook(b"{}", None, webhook_secret=SECRET) is None

    def test_not_configured(self):
        assert handle_stripe_webhook(b"{}", "t=1,v1=x", webhook_secret=None) is None


class TestWebhookRoute:

    async def post_event(self, client, evt):
        with patch("api.routes.webhooks.handle_stripe_webhook", return_value=evt):
            return await client.post("/api/webhooks/stripe", content=json.dumps(evt), headers=SIGNATURE)

    async def test_missing_signature(self, client):
        response = await client.post("/api/webhooks/stripe", content=b"{}")

        assert response.status_code == 400

    async def test_bad_signature(self, client):
        with patch("api.routes.webhooks.handle_stripe_webhook", return_value=None):
            response = await client.post("/api/webhooks/stripe", content=b"{}", headers=SIGNATURE)

        assert response.status_code == 400

    async def test_renewal_resets_usage(self, client, make_account, get_account):
        account, _ = await make_account(images_used=42, stripe_customer_id="cus_renew")

        response = await self.post_event(client, event("invoice.payment_succeeded", {
            "id": "in_1", "customer": "cus_renew", "subscription": "sub_1",
        }))

        assert response.status_code == 200
        assert (await get_account(account.id)).images_used == 0

    async def test_one_off_invoice_ignored(self, client, make_account, get_account):
        account, _ = await make_account(images_used=42, stripe_customer_id="cus_once")

        await self.post_event(client, event("invoice.payment_succeeded", {
            "id": "in_2", "customer": "cus_once", "subscription": None,
        }))

        assert (await get_account(account.id)).images_used == 42

    async def test_cancellation_downgrades_to_starter(self, client, make_account, get_account):
        account, _ = await make_account(tier="pro_500", tier_name="Pro 500", images_quota=500)

        await self.post_event(client, event("customer.subscription.deleted", {
            "id": "sub_2", "customer": "cus_unknown", "metadata": {"userId": account.id},
        }))

        stored = await get_account(account.id)
        assert stored.tier == "starter"
        assert stored.tier_name == "Starter"
        assert stored.images_quota == 50

    async def test_pay_per_image_checkout_enables_metering(self, client, make_account, get_account):
        account, _ = await make_account()

        await self.post_event(client, event("checkout.session.completed", {
            "id": "cs_1", "customer": "cus_meter",
            "metadata": {"type": "pay_per_image", "userId": account.id},
        }))

        stored = await get_account(account.id)
        assert stored.metered_billing_enabled is True
        assert stored.metered_billing_handle == "cus_meter"
        assert stored.stripe_customer_id == "cus_meter"

    async def test_other_checkout_is_ignored(self, client, make_account, get_account):
        account, _ = await make_account()

        await self.post_event(client, event("checkout.session.completed", {
            "id": "cs_2", "customer": "cus_x", "metadata": {"userId": account.id},
        }))

        assert (await get_account(account.id)).metered_billing_enabled is False

    async def test_unhandled_event(self, client):
        response = await self.post_event(client, event("charge.refunded", {"id": "ch_1"}))

        assert response.status_code == 200
        assert response.json()["event_type"] == "charge.refunded"
