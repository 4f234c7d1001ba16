"""
Transformation Service Adapter Tests

Example usage:
    pytest tests/test_transform.py -v
"""

import json

import httpx
import pytest

from core.errors import TransformationError
from core.transform import EnhanceMode, ImageTransformer


def transformer_for(handler, api_key="key-123"):
    return ImageTransformer(api_key=api_key, model="test-model", base_url="https://model.test/v1",
                            transport=httpx.MockTransport(handler))


def image_response(data="UkVTVUxU", mime="image/png"):
    return httpx.Response(200, json={
        "candidates": [{"content": {"parts": [
            {"text": "done"},
            {"inlineData": {"mimeType": mime, "data": data}},
        ]}}]
    })


async def test_enhance_returns_image():
    requests = []

    def handler(request):
        requests.append(request)
        return image_response()

    result = await transformer_for(handler).enhance("aW1n", "image/jpeg", EnhanceMode.SKY)

    assert result.data == "UkVTVUxU"
    assert result.mime_type == "image/png"
    request = requests[0]
    assert request.url.path == "/v1/models/test-model:generateContent"
    assert request.headers["x-goog-api-key"] == "key-123"
    parts = json.loads(request.content)["contents"][0]["parts"]
    assert "blue sky" in parts[0]["text"]
    assert parts[1]["inline_data"] == {"mime_type": "image/jpeg", "data": "aW1n"}


async def test_remove_object_prompt():
    requests = []

    def handler(request):
        requests.append(request)
        return image_response()

    await transformer_for(handler).remove_object("aW1n", "image/jpeg", "garden hose")

    prompt = json.loads(requests[0].content)["contents"][0]["parts"][0]["text"]
    assert "garden hose" in prompt


async def test_service_error():
    def handler(request):
        return httpx.Response(429, json={"error": {"message": "rate limited"}})

    with pytest.raises(TransformationError) as exc:
        await transformer_for(handler).enhance("aW1n", "image/jpeg", EnhanceMode.FULL)

    assert exc.value.status_code == 429


async def test_no_image_in_response():
    def handler(request):
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "sorry"}]}}]})

    with pytest.raises(TransformationError):
        await transformer_for(handler).enhance("aW1n", "image/jpeg", EnhanceMode.FULL)


async def test_unreachable():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(TransformationError):
        await transformer_for(handler).enhance("aW1n", "image/jpeg", EnhanceMode.FULL)


async def test_missing_api_key():
    def handler(request):
        raise AssertionError("should not be called")

    with pytest.raises(TransformationError):
        await transformer_for(handler, api_key=None).enhance("aW1n", "image/jpeg", EnhanceMode.FULL)
