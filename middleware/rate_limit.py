"""
Rate limiting for the submission endpoints.

Limits are keyed by the same client address anonymous leads are keyed by,
so a single address cannot hammer the transformation service.
"""

import os

from slowapi import Limiter

from core.logging import get_client_ip

RATE_LIMIT_PER_MIN = int(os.environ.get("RATE_LIMIT_PER_MIN", "30"))

limiter = Limiter(key_func=get_client_ip)


def rate_limit():
    """
    Get rate limit decorator, with option to disable for testing.

    Example:
        @router.post("/enhance")
        @rate_limit()
        async def enhance(request: Request, ...):
            ...
    """
    if os.environ.get("PHOTOLEDGER_TEST_DISABLE_RATELIMIT", "").lower() in ["1", "true"]:
        def no_limit_decorator(func):
            return func
        return no_limit_decorator

    return limiter.limit(f"{RATE_LIMIT_PER_MIN}/minute")
