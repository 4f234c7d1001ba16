"""
Image Submission API Routes

Both transformation endpoints follow the same pipeline:

    resolve caller -> entitlement gate -> transformation -> ledger increment
    -> (metered accounts beyond quota) background billing report

Refusals are returned before the transformation service is called.
Accounting failures after a successful transformation are logged only; the
caller still receives the processed image.

Example usage:
    POST /api/enhance {"image": "<base64>", "mimeType": "image/jpeg", "mode": "hdr"}
    POST /api/remove  {"image": "<base64>", "mimeType": "image/png", "objectToRemove": "car"}
"""

import uuid
from typing import Awaitable, Callable

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.ext.asyncio import async_sessionmaker

from auth.models import EnhanceRequest, RemoveRequest
from core.db import get_db_session, get_session_factory
from core.errors import TransformationError, error_response
from core.gate import decide
from core.identity import AuthenticatedAccount, Identity, LedgerRef, load_identity
from core.ledger import UsageLedger
from core.logging import get_logger, log_with_context
from core.metering import report_noncritical
from core.transform import ImageTransformer, TransformResult, get_transformer
from middleware.current_user import Caller, get_caller
from middleware.rate_limit import rate_limit

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["process"])


@router.post("/enhance")
@rate_limit()
async def enhance_image(
    request: Request,
    body: EnhanceRequest,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(get_caller),
    factory: async_sessionmaker = Depends(get_session_factory),
    transformer: ImageTransformer = Depends(get_transformer)
):
    """Enhance one image with the selected mode."""
    if not body.image:
        return error_response("NO_IMAGE", "No image provided", 400)

    result = await submit(
        request, caller, factory, background_tasks,
        lambda: transformer.enhance(body.image, body.mimeType, body.mode)
    )
    if isinstance(result, TransformResult):
        return {"result": result.data, "mimeType": result.mime_type, "message": "Image enhanced successfully"}
    return result


@router.post("/remove")
@rate_limit()
async def remove_object(
    request: Request,
    body: RemoveRequest,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(get_caller),
    factory: async_sessionmaker = Depends(get_session_factory),
    transformer: ImageTransformer = Depends(get_transformer)
):
    """Remove a described object from one image."""
    if not body.image:
        return error_response("NO_IMAGE", "No image provided", 400)
    if not body.objectToRemove.strip():
        return error_response("NO_PROMPT", "Please specify what to remove", 400)

    result = await submit(
        request, caller, factory, background_tasks,
        lambda: transformer.remove_object(body.image, body.mimeType, body.objectToRemove.strip())
    )
    if isinstance(result, TransformResult):
        return {"result": result.data, "mimeType": result.mime_type, "message": "Object removed successfully"}
    return result


async def submit(
    request: Request,
    caller: Caller,
    factory: async_sessionmaker,
    background_tasks: BackgroundTasks,
    run_transform: Callable[[], Awaitable[TransformResult]]
):
    """
    Run one submission through gate, transformation and accounting.

    Returns:
        TransformResult on success, otherwise the error JSONResponse
    """
    async with get_db_session(factory) as session:
        identity = await load_identity(session, caller.account_id, caller.client_ip)

    decision = decide(identity)
    if not decision.allowed:
        log_with_context(logger, "info", "Submission refused", request=request, decision=decision.value)
        return error_response(decision.value, decision.message, decision.status_code)

    try:
        result = await run_transform()
    except TransformationError as e:
        log_with_context(logger, "warning", f"Transformation failed: {e}", request=request)
        return error_response("TRANSFORM_FAILED", str(e), 502)

    await record_consumption(identity, factory, background_tasks)
    return result


async def record_consumption(
    identity: Identity,
    factory: async_sessionmaker,
    background_tasks: BackgroundTasks
) -> None:
    """
    Increment the ledger and schedule a billing report for metered overage.

    Metered accounts are billed for units beyond their quota only; units
    inside the quota are covered by the subscription.
    """
    outcome = await UsageLedger(factory).increment(LedgerRef.for_identity(identity))

    if not isinstance(identity, AuthenticatedAccount) or not identity.metered_billing_enabled:
        return

    used_after = outcome.value if outcome.ok else identity.images_used + 1
    if used_after > identity.images_quota:
        background_tasks.add_task(
            report_noncritical,
            identity.metered_billing_handle,
            1,
            f"{identity.id}:{uuid.uuid4().hex}",
        )
