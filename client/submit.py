"""
HTTP submission client for the transformation endpoints.

Sends one image to ``/api/enhance`` or ``/api/remove`` and folds the response
into a ``SubmissionOutcome``. The client never raises for server or network
trouble; the queue decides what each outcome means for the batch.

Example usage:
    client = SubmissionClient("http://localhost:8000", token=access_token)
    outcome = await client.submit(payload, "image/jpeg", ProcessOptions(mode="hdr"))
"""

import base64
from dataclasses import dataclass
from typing import Optional, Union

import httpx

from core.logging import get_logger

logger = get_logger(__name__)

# Error codes the server returns for entitlement refusals
REFUSAL_CODES = frozenset({
    "EMAIL_REQUIRED",
    "LIMIT_REACHED",
    "QUOTA_EXCEEDED",
    "USER_NOT_FOUND",
    "INVALID_TOKEN",
})
PAYWALL_CODE = "QUOTA_EXCEEDED"


@dataclass(frozen=True)
class Succeeded:
    result_ref: str


@dataclass(frozen=True)
class Refused:
    reason: str
    message: str

    @property
    def is_paywall(self) -> bool:
        return self.reason == PAYWALL_CODE


@dataclass(frozen=True)
class Failed:
    message: str


SubmissionOutcome = Union[Succeeded, Refused, Failed]


class SubmissionClient:
    """Posts queue items to a photoledger server."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.transport = transport

    async def submit(self, payload: bytes, content_type: str, options) -> SubmissionOutcome:
        """
        Submit one image.

        Args:
            payload: Raw image bytes
            content_type: MIME type of ``payload``
            options: ``ProcessOptions`` selecting enhance or remove

        Returns:
            Succeeded with a ``data:`` URI of the result, Refused with the
            server's refusal code, or Failed
        """
        body = {"image": base64.b64encode(payload).decode("ascii"), "mimeType": content_type}
        if options.action == "remove":
            path = "/api/remove"
            body["objectToRemove"] = options.object_to_remove or ""
        else:
            path = "/api/enhance"
            body["mode"] = options.mode

        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.post(path, json=body, headers=headers)
        except httpx.HTTPError as e:
            logger.warning(f"Submission transport error: {e}")
            return Failed(message=f"Network error: {e}")

        return parse_response(response)


def parse_response(response: httpx.Response) -> SubmissionOutcome:
    try:
        data = response.json()
    except ValueError:
        data = {}
    if not isinstance(data, dict):
        data = {}

    if response.status_code == 200:
        result = data.get("result")
        if not result:
            return Failed(message="Server returned no image")
        mime_type = data.get("mimeType") or "image/png"
        return Succeeded(result_ref=f"data:{mime_type};base64,{result}")

    code = data.get("error")
    message = data.get("message") or data.get("detail") or f"HTTP {response.status_code}"
    if code in REFUSAL_CODES:
        return Refused(reason=code, message=str(message))
    return Failed(message=str(message))
