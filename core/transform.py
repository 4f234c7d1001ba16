"""
Image transformation service adapter.

The AI model itself is an external collaborator: an image and a mode go in,
a processed image or a failure comes out. This module only wraps the HTTP
call and maps every failure to ``TransformationError``.
"""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from core.errors import TransformationError
from core.logging import get_logger

logger = get_logger(__name__)

GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY")
GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.5-flash-image")
GEMINI_BASE_URL = os.environ.get("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta")
TRANSFORM_TIMEOUT_S = float(os.environ.get("TRANSFORM_TIMEOUT_S", "120"))

_PRESERVE = "Maintain the exact aspect ratio and composition of the original image. Do not crop or resize."


class EnhanceMode(str, Enum):
    FULL = "full"
    HDR = "hdr"
    WINDOW = "window"
    SKY = "sky"
    WHITE_BALANCE = "white_balance"
    PERSPECTIVE = "perspective"
    RELIGHTING = "relighting"
    RAW_QUALITY = "raw_quality"
    PRIVACY = "privacy"
    COLOR = "color"


MODE_PROMPTS: Dict[EnhanceMode, str] = {
    EnhanceMode.FULL: "Apply professional real estate photo enhancement: HDR merge, window pull, "
                      "sky replacement, neutral white balance, straightened verticals, even lighting, "
                      "privacy blur and a natural colour boost.",
    EnhanceMode.HDR: "Merge exposure like an HDR bracket: lift shadows, protect highlights, bright airy look.",
    EnhanceMode.WINDOW: "Make the exterior view through every window clear and correctly exposed.",
    EnhanceMode.SKY: "Replace a grey or overcast sky with a natural bright blue sky with soft clouds.",
    EnhanceMode.WHITE_BALANCE: "Correct the white balance to neutral 5500K daylight with pure whites.",
    EnhanceMode.PERSPECTIVE: "Straighten all vertical and horizontal architectural lines.",
    EnhanceMode.RELIGHTING: "Relight the room evenly and remove dark corners.",
    EnhanceMode.RAW_QUALITY: "Increase detail and sharpness to print quality without adding artefacts.",
    EnhanceMode.PRIVACY: "Blur all faces and licence plates completely.",
    EnhanceMode.COLOR: "Boost saturation slightly for vibrant but natural colours.",
}


@dataclass
class TransformResult:
    data: str  # base64 image
    mime_type: str


class ImageTransformer:
    """Client for the generative image model."""

    def __init__(
        self,
        api_key: Optional[str] = GEMINI_API_KEY,
        model: str = GEMINI_MODEL,
        base_url: str = GEMINI_BASE_URL,
        timeout: float = TRANSFORM_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def enhance(self, image_b64: str, mime_type: str, mode: EnhanceMode) -> TransformResult:
        prompt = f"You are an expert real estate photo editor. {MODE_PROMPTS[mode]} {_PRESERVE}"
        return await self._generate(prompt, image_b64, mime_type)

    async def remove_object(self, image_b64: str, mime_type: str, object_to_remove: str) -> TransformResult:
        prompt = (
            f"Remove the following from the image and fill the area seamlessly: {object_to_remove}. "
            f"{_PRESERVE}"
        )
        return await self._generate(prompt, image_b64, mime_type)

    async def _generate(self, prompt: str, image_b64: str, mime_type: str) -> TransformResult:
        if not self.api_key:
            raise TransformationError("GEMINI_API_KEY is not configured")

        body: Dict[str, Any] = {
            "contents": [{
                "parts": [
                    {"text": prompt},
                    {"inline_data": {"mime_type": mime_type, "data": image_b64}},
                ]
            }],
            "generationConfig": {"responseModalities": ["IMAGE"]},
        }
        url = f"{self.base_url}/models/{self.model}:generateContent"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, json=body, headers={"x-goog-api-key": self.api_key})
        except httpx.HTTPError as e:
            raise TransformationError(f"Transformation service unreachable: {e}") from e

        if response.status_code != 200:
            logger.warning("Transformation service returned an error",
                           extra={"status": response.status_code, "body": response.text[:500]})
            raise TransformationError(
                f"Transformation service error ({response.status_code})",
                status_code=response.status_code
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise TransformationError("Transformation service returned invalid JSON") from e
        for candidate in payload.get("candidates") or []:
            for part in (candidate.get("content") or {}).get("parts") or []:
                inline = part.get("inlineData") or part.get("inline_data")
                if inline and inline.get("data"):
                    return TransformResult(
                        data=inline["data"],
                        mime_type=inline.get("mimeType") or inline.get("mime_type") or "image/png",
                    )

        raise TransformationError("No image returned by transformation service")


_transformer: Optional[ImageTransformer] = None


def get_transformer() -> ImageTransformer:
    """Dependency returning the shared transformer; overridden in tests."""
    global _transformer
    if _transformer is None:
        _transformer = ImageTransformer()
    return _transformer
