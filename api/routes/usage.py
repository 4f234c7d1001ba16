"""
Usage API Routes

Endpoints for inspecting and unlocking entitlement:

    GET  /api/lead  - Anonymous trial state for the caller's address
    POST /api/lead  - Register an email to unlock the free trial
    GET  /api/quota - Quota summary for an authenticated account
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import async_sessionmaker

from auth.models import LeadRequest
from core.billing import FREE_TRIAL_LIMIT
from core.db import get_db_session, get_session_factory
from core.errors import error_response
from core.identity import get_or_create_lead, register_lead_email
from core.logging import get_logger, log_with_context
from core.models_sql import Account
from middleware.current_user import Caller, get_caller, require_account

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["usage"])


@router.get("/lead")
async def get_lead(
    caller: Caller = Depends(get_caller),
    factory: async_sessionmaker = Depends(get_session_factory)
):
    """Trial state for the caller's network address."""
    async with get_db_session(factory) as session:
        lead = await get_or_create_lead(session, caller.client_ip)
        usage_count = lead.usage_count or 0
        return {
            "hasEmail": bool(lead.email),
            "usageCount": usage_count,
            "isPro": bool(lead.is_pro),
            "remaining": max(FREE_TRIAL_LIMIT - usage_count, 0),
        }


@router.post("/lead")
async def create_lead(
    request: Request,
    body: LeadRequest,
    caller: Caller = Depends(get_caller),
    factory: async_sessionmaker = Depends(get_session_factory)
):
    """Attach an email to the caller's lead row."""
    email = body.email.lower()
    async with get_db_session(factory) as session:
        registered = await register_lead_email(session, caller.client_ip, email)

    if not registered:
        return error_response("EMAIL_IN_USE", "This email has already been used for a free trial", 409)

    log_with_context(logger, "info", "Lead email registered", request=request, client_ip=caller.client_ip)
    return {"success": True, "message": "Email saved"}


@router.get("/quota")
async def get_quota(
    caller: Caller = Depends(require_account),
    factory: async_sessionmaker = Depends(get_session_factory)
):
    """Quota summary for the authenticated account."""
    async with get_db_session(factory) as session:
        account = await session.get(Account, caller.account_id)
        if account is None:
            return error_response("USER_NOT_FOUND", "User not found", 404)

        used = account.images_used or 0
        return {
            "tier": account.tier,
            "tierName": account.tier_name,
            "used": used,
            "limit": account.images_quota,
            "remaining": max(account.images_quota - used, 0),
            "metered": bool(account.metered_billing_enabled),
        }
