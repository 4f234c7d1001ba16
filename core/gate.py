"""
Entitlement gate.

Decides, before any expensive work starts, whether a caller may submit one
more image. The decision is a pure function of the identity's ledger state;
it never reads or writes storage itself.

The gate check and the later ledger increment are separate round trips, so
two concurrent submissions from one identity can both pass. For trial and
quota identities that is at most one extra image. Metered identities rely on
the atomic increment path in ``core.ledger`` instead.

Example usage:
    decision = decide(identity)
    if not decision.allowed:
        return error_response(decision.value, decision.message, decision.status_code)
"""

from enum import Enum

from core.billing import FREE_TRIAL_LIMIT
from core.identity import AnonymousLead, AuthenticatedAccount, Identity, UnknownAccount


class GateDecision(str, Enum):
    """Outcome of an entitlement check."""
    ALLOWED = "ALLOWED"
    EMAIL_REQUIRED = "EMAIL_REQUIRED"
    LIMIT_REACHED = "LIMIT_REACHED"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    USER_NOT_FOUND = "USER_NOT_FOUND"

    @property
    def allowed(self) -> bool:
        return self is GateDecision.ALLOWED

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]

    @property
    def message(self) -> str:
        return _MESSAGES[self]


_STATUS_CODES = {
    GateDecision.ALLOWED: 200,
    GateDecision.EMAIL_REQUIRED: 401,
    GateDecision.LIMIT_REACHED: 403,
    GateDecision.QUOTA_EXCEEDED: 403,
    GateDecision.USER_NOT_FOUND: 404,
}

_MESSAGES = {
    GateDecision.ALLOWED: "Allowed",
    GateDecision.EMAIL_REQUIRED: "Please enter your email to continue",
    GateDecision.LIMIT_REACHED: "Free trial limit reached. Choose a plan to continue.",
    GateDecision.QUOTA_EXCEEDED: "Image quota exceeded. Upgrade your plan or enable pay-per-image.",
    GateDecision.USER_NOT_FOUND: "User not found",
}


def decide(identity: Identity, trial_limit: int = FREE_TRIAL_LIMIT) -> GateDecision:
    """
    Decide whether ``identity`` may submit another image.

    Args:
        identity: Caller identity with its current ledger state
        trial_limit: Images an anonymous lead may use without a plan

    Returns:
        GateDecision.ALLOWED or the refusal reason

    Example:
        >>> decide(AnonymousLead("203.0.113.7"))
        <GateDecision.EMAIL_REQUIRED: 'EMAIL_REQUIRED'>
    """
    if isinstance(identity, AnonymousLead):
        if not identity.email:
            return GateDecision.EMAIL_REQUIRED
        if identity.usage_count >= trial_limit and not identity.is_pro:
            return GateDecision.LIMIT_REACHED
        return GateDecision.ALLOWED

    if isinstance(identity, AuthenticatedAccount):
        if identity.images_used >= identity.images_quota and not identity.metered_billing_enabled:
            return GateDecision.QUOTA_EXCEEDED
        return GateDecision.ALLOWED

    if isinstance(identity, UnknownAccount):
        return GateDecision.USER_NOT_FOUND

    raise TypeError(f"Unsupported identity type: {type(identity).__name__}")
