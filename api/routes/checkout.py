"""
Checkout API Routes

Simulated checkout, pay-per-image enrolment and account creation from a
purchase token.

    POST /api/checkout/simulate       - Issue a purchase token for a tier
    GET  /api/checkout/simulate       - Verify a purchase token
    POST /api/checkout/pay-per-image  - Enrol in metered pay-per-image billing
    POST /api/auth/signup             - Create an account from a purchase token
    POST /api/auth/token              - Exchange email and password for an access token

A purchase token can create exactly one account: its session id is stored on
the account row under a unique constraint.
"""

import os
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import select

from auth.models import AuthToken, LoginRequest, PayPerImageRequest, SignupRequest, SimulatedCheckoutRequest
from auth.provider import MIN_PASSWORD_LENGTH, hash_password, identity_provider, verify_password
from core.db import get_db_session, get_session_factory
from core.errors import error_response, invalid_token_response
from core.logging import get_logger, log_with_context
from core.models_sql import Account
from core.session_codec import REASON_MALFORMED, SessionTokenCodec, build_purchase, check_purchase
from core.stripe_util import (
    create_pay_per_image_checkout,
    create_pay_per_image_subscription,
    is_payments_configured,
)
from middleware.current_user import Caller, get_caller
from middleware.rate_limit import rate_limit

logger = get_logger(__name__)

APP_URL = os.environ.get("APP_URL", "http://localhost:8000").rstrip("/")

router = APIRouter(prefix="/api", tags=["checkout"])


def get_codec() -> SessionTokenCodec:
    return SessionTokenCodec()


@router.post("/checkout/simulate")
async def create_simulated_checkout(
    request: Request,
    body: SimulatedCheckoutRequest,
    codec: SessionTokenCodec = Depends(get_codec)
):
    """
    Create a paid purchase token without going through Stripe.

    Returns:
        ``{success, url, sessionId}`` where ``url`` is the success page
        carrying the token
    """
    try:
        fields = build_purchase(body.tier, body.quantity)
    except ValueError as e:
        return error_response("INVALID_TIER", str(e), 400)

    token = codec.encrypt(fields)
    log_with_context(
        logger, "info", "Simulated checkout created", request=request,
        session_id=fields.session_id, tier=fields.tier
    )
    return {
        "success": True,
        "url": f"{APP_URL}/success?session={quote(token)}",
        "sessionId": fields.session_id,
    }


@router.get("/checkout/simulate")
async def verify_simulated_checkout(
    session: Optional[str] = Query(default=None),
    codec: SessionTokenCodec = Depends(get_codec)
):
    """Decode and validate a purchase token."""
    if not session:
        return error_response("NO_SESSION", "No session provided", 400, valid=False)

    fields = codec.decrypt(session)
    if fields is None:
        return invalid_token_response(REASON_MALFORMED)

    reason = check_purchase(fields)
    if reason:
        return invalid_token_response(reason)

    return {
        "valid": True,
        "tier": fields.tier,
        "tierName": fields.tier_name,
        "images": fields.images_granted,
        "price": float(fields.price),
        "sessionId": fields.session_id,
    }


@router.post("/checkout/pay-per-image")
async def enable_pay_per_image(
    request: Request,
    body: Optional[PayPerImageRequest] = None,
    caller: Caller = Depends(get_caller),
    factory: async_sessionmaker = Depends(get_session_factory)
):
    """
    Enrol the caller in metered pay-per-image billing.

    An account whose Stripe customer already has a card on file gets a
    metered subscription straight away. Everyone else is sent to a Stripe
    Checkout session; the ``checkout.session.completed`` webhook finishes
    the enrolment.

    Example:
        POST /api/checkout/pay-per-image
        {"returnUrl": "https://app.example.com/enhance"}
    """
    if not is_payments_configured():
        return error_response("PAYMENTS_UNAVAILABLE", "Payment processing not available", 503)

    account_id = None
    async with get_db_session(factory) as session:
        account = await session.get(Account, caller.account_id) if caller.account_id else None

        if account is not None:
            account_id = account.id
            if account.metered_billing_enabled:
                return {
                    "success": True,
                    "message": "Pay-per-image is already enabled",
                    "alreadyEnabled": True,
                }

            if account.stripe_customer_id:
                created = create_pay_per_image_subscription(account.stripe_customer_id, account.id)
                if created is None:
                    return error_response("ENABLE_FAILED", "Failed to enable pay-per-image", 500)

                account.metered_billing_enabled = True
                account.metered_billing_handle = account.stripe_customer_id
                account.metered_subscription_id = created["subscription_id"]
                account.updated_at = datetime.now(timezone.utc)
                session.add(account)
                log_with_context(
                    logger, "info", "Pay-per-image enabled", request=request,
                    account_id=account.id, subscription_id=created["subscription_id"]
                )
                return {
                    "success": True,
                    "message": "Pay-per-image enabled successfully",
                    "subscriptionId": created["subscription_id"],
                }

    return_url = body.returnUrl if body else None
    if not return_url or not return_url.startswith(APP_URL):
        return_url = f"{APP_URL}/success?payPerImage=1"

    checkout = create_pay_per_image_checkout(account_id, return_url, f"{APP_URL}/pricing")
    if checkout is None:
        return error_response("CHECKOUT_FAILED", "Failed to create checkout session", 500)

    log_with_context(
        logger, "info", "Pay-per-image checkout created", request=request,
        account_id=account_id, session_id=checkout["id"]
    )
    return {
        "success": True,
        "url": checkout["url"],
        "sessionId": checkout["id"],
        "requiresCheckout": True,
    }


@router.post("/auth/signup", status_code=201)
@rate_limit()
async def signup(
    request: Request,
    body: SignupRequest,
    factory: async_sessionmaker = Depends(get_session_factory),
    codec: SessionTokenCodec = Depends(get_codec)
):
    """
    Create an account holding the quota bought with ``body.session``.

    Returns:
        AuthToken for the new account
    """
    if len(body.password) < MIN_PASSWORD_LENGTH:
        return error_response(
            "WEAK_PASSWORD", f"Password must be at least {MIN_PASSWORD_LENGTH} characters", 400
        )
    if not body.session:
        return error_response("NO_SESSION", "Payment session is required", 400)

    fields = codec.decrypt(body.session)
    if fields is None:
        return invalid_token_response(REASON_MALFORMED)
    reason = check_purchase(fields)
    if reason:
        return invalid_token_response(reason)

    email = body.email.lower()
    async with get_db_session(factory) as session:
        existing = await session.execute(
            select(Account).where(
                (Account.email == email) | (Account.purchase_session_id == fields.session_id)
            )
        )
        clash = existing.scalars().first()
        if clash is not None:
            return _conflict(clash, email)

        account = Account(
            email=email,
            password_hash=hash_password(body.password),
            tier=fields.tier,
            tier_name=fields.tier_name,
            images_used=0,
            images_quota=fields.images_granted,
            purchase_session_id=fields.session_id,
        )
        session.add(account)
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            return error_response("ACCOUNT_EXISTS", "Account or payment session already used", 409)
        account_id = account.id

    log_with_context(
        logger, "info", "Account created from purchase", request=request,
        account_id=account_id, tier=fields.tier, images_quota=fields.images_granted
    )
    return AuthToken(
        access_token=identity_provider.create_access_token(account_id),
        expires_in=identity_provider.expires_in,
    )


def _conflict(clash: Account, email: str):
    if clash.email == email:
        return error_response("ACCOUNT_EXISTS", "An account with this email already exists", 409)
    return error_response("SESSION_USED", "This payment session has already been used", 409)


@router.post("/auth/token")
@rate_limit()
async def login(
    request: Request,
    body: LoginRequest,
    factory: async_sessionmaker = Depends(get_session_factory)
):
    """Exchange credentials for an access token."""
    async with get_db_session(factory) as session:
        result = await session.execute(select(Account).where(Account.email == body.email.lower()))
        account = result.scalar_one_or_none()

    if account is None or not account.password_hash or not verify_password(body.password, account.password_hash):
        log_with_context(logger, "info", "Login failed", request=request)
        return error_response("INVALID_CREDENTIALS", "Invalid email or password", 401)

    return AuthToken(
        access_token=identity_provider.create_access_token(account.id),
        expires_in=identity_provider.expires_in,
    )
