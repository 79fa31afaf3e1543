"""
Unit tests for the vision model client.
"""

import base64
import json

import httpx
import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.errors import ValidationError
from service_mcp.app.adapters.vision_client import (
    DEFAULT_CONTEXT,
    MAX_IMAGE_BYTES,
    VisionClient,
    validate_image,
)

IMAGE = base64.b64encode(b"screenshot" * 100).decode()
API_URL = "https://vision.test/v3/openai/chat/completions"


def completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class TestValidateImage:
    """Test cases for image payload validation."""

    @pytest.mark.parametrize("image_data", [None, "", 123])
    def test_missing(self, image_data):
        with pytest.raises(ValidationError, match="Invalid image data"):
            validate_image(image_data)

    def test_not_base64(self):
        with pytest.raises(ValidationError, match="Invalid base64 format"):
            validate_image("%%%not-base64%%%")

    def test_too_large(self):
        oversized = "A" * ((MAX_IMAGE_BYTES // 3 + 1) * 4)

        with pytest.raises(ValidationError, match="Image too large"):
            validate_image(oversized)

    def test_valid(self):
        validate_image(IMAGE)


class TestVisionClient:
    """Test cases for VisionClient."""

    @staticmethod
    def make_client(handler, api_key="vision-key"):
        return VisionClient(API_URL, api_key, "meta-llama/llama-3.2-11b-vision-instruct",
                            transport=httpx.MockTransport(handler))

    @pytest.mark.asyncio
    async def test_request_shape(self):
        """The request is an OpenAI-style chat completion with an inline image."""
        captured = {}

        def handler(request):
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json=completion('{"confidence": 0.8}'))

        await self.make_client(handler).analyze(IMAGE, "checkout form")

        body = captured["body"]
        assert captured["auth"] == "Bearer vision-key"
        assert body["model"] == "meta-llama/llama-3.2-11b-vision-instruct"
        parts = body["messages"][0]["content"]
        assert "checkout form" in parts[0]["text"]
        assert parts[1]["image_url"]["url"] == f"data:image/jpeg;base64,{IMAGE}"

    @pytest.mark.asyncio
    async def test_json_content(self):
        def handler(request):
            return httpx.Response(200, json=completion(json.dumps({
                "detected_elements": ["navbar"],
                "suggested_agents": ["frontend"],
                "confidence": 0.9,
            })))

        analysis = await self.make_client(handler).analyze(IMAGE)

        assert analysis["detected_elements"] == ["navbar"]
        assert analysis["task_context"] == DEFAULT_CONTEXT
        assert analysis["image_size_estimate"].endswith("KB")
        assert "analyzed_at" in analysis

    @pytest.mark.asyncio
    async def test_plain_text_content(self):
        """Non-JSON model output is wrapped into a structured summary."""
        def handler(request):
            return httpx.Response(200, json=completion("A login form with two inputs."))

        analysis = await self.make_client(handler).analyze(IMAGE)

        assert analysis["confidence"] == 0.7
        assert analysis["raw_response"] == "A login form with two inputs."
        assert analysis["technical_context"] == "A login form with two inputs."

    @pytest.mark.asyncio
    async def test_http_error_falls_back(self):
        def handler(request):
            return httpx.Response(503, text="overloaded")

        analysis = await self.make_client(handler).analyze(IMAGE, "dashboard")

        assert analysis["fallback"] is True
        assert analysis["confidence"] == 0.5
        assert analysis["task_context"] == "dashboard"

    @pytest.mark.asyncio
    async def test_transport_error_falls_back(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        analysis = await self.make_client(handler).analyze(IMAGE)

        assert analysis["fallback"] is True

    @pytest.mark.asyncio
    async def test_malformed_response_falls_back(self):
        def handler(request):
            return httpx.Response(200, json={"choices": []})

        analysis = await self.make_client(handler).analyze(IMAGE)

        assert analysis["fallback"] is True

    @pytest.mark.asyncio
    async def test_unconfigured_skips_network(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=completion("{}"))

        analysis = await self.make_client(handler, api_key=None).analyze(IMAGE)

        assert calls == []
        assert analysis["fallback"] is True

    @pytest.mark.asyncio
    async def test_invalid_image_raises(self):
        def handler(request):
            return httpx.Response(200, json=completion("{}"))

        with pytest.raises(ValidationError):
            await self.make_client(handler).analyze("not base64!")
