"""Centralized error types and JSON response helpers."""

from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse


class TransformationError(Exception):
    """Raised when the external image transformation service fails or times out."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class LedgerError(Exception):
    """Raised by an increment strategy when its storage path is unavailable."""
    pass


class QueueLimitError(Exception):
    """
    Raised when adding files would push the client queue past its hard cap.

    The whole batch is rejected; no item from it is stored.
    """

    def __init__(self, current_size: int, requested: int, limit: int):
        self.current_size = current_size
        self.requested = requested
        self.limit = limit
        super().__init__(
            f"Queue limit exceeded: {current_size} queued + {requested} new > {limit}"
        )


def error_response(
    code: str,
    message: str,
    status_code: int,
    **details: Any
) -> JSONResponse:
    """
    Build the standard machine-readable error body.

    Args:
        code: Stable upper-case error code clients switch on (e.g. ``QUOTA_EXCEEDED``)
        message: Human readable explanation
        status_code: HTTP status to return
        **details: Extra fields merged into the body

    Returns:
        JSONResponse with ``{"error": code, "message": message, ...}``
    """
    body: Dict[str, Any] = {"error": code, "message": message}
    body.update(details)
    return JSONResponse(status_code=status_code, content=body)


def invalid_token_response(reason: str) -> JSONResponse:
    """Response for a purchase token that is malformed, expired or unpaid."""
    return JSONResponse(
        status_code=400,
        content={"valid": False, "reason": reason, "message": f"Invalid payment session: {reason}"}
    )
