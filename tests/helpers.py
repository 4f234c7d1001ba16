"""
photoledger Test Helper Utilities

Fakes for the external collaborators (transformation service, submission
endpoint) and small request helpers.

Example usage:
    response = await client.get("/api/quota", headers=bearer(token))
"""

from typing import List, Optional, Sequence, Tuple

from client.submit import Failed, SubmissionOutcome, Succeeded
from core.errors import TransformationError
from core.transform import TransformResult


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def forwarded(ip: str) -> dict:
    return {"X-Forwarded-For": ip}


class FakeTransformer:
    """Stands in for the generative model; records every call."""

    def __init__(self):
        self.calls: List[Tuple[str, str]] = []
        self.fail = False

    async def enhance(self, image_b64, mime_type, mode):
        return self._run("enhance", mode.value)

    async def remove_object(self, image_b64, mime_type, object_to_remove):
        return self._run("remove", object_to_remove)

    def _run(self, action, arg):
        self.calls.append((action, arg))
        if self.fail:
            raise TransformationError("model timed out")
        return TransformResult(data="cHJvY2Vzc2Vk", mime_type="image/png")


class ScriptedSubmitter:
    """
    Submitter returning queued outcomes in order; an exception in the
    script is raised instead of returned.

    ``on_submit`` is called before each outcome is returned, so tests can
    inspect queue state while a submission is in flight.
    """

    def __init__(self, outcomes: Optional[Sequence[SubmissionOutcome]] = None, on_submit=None):
        self.outcomes = list(outcomes or [])
        self.on_submit = on_submit
        self.calls: List[Tuple[bytes, str, object]] = []

    async def submit(self, payload, content_type, options):
        self.calls.append((payload, content_type, options))
        if self.on_submit is not None:
            self.on_submit(payload)
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return Succeeded(result_ref="data:image/png;base64,b2s=")


def failed(message: str = "boom") -> Failed:
    return Failed(message=message)
