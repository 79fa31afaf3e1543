"""
Vision model client for screenshot analysis.
"""

import base64
import binascii
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from shared.errors import ExternalServiceError, ValidationError
from shared.logging import get_logger

MAX_IMAGE_BYTES = 10 * 1024 * 1024
DEFAULT_CONTEXT = "Development task analysis"

ANALYSIS_PROMPT = """Analyze this screenshot in the context of: {context}

Provide a structured analysis including:
1. UI elements detected (buttons, forms, navigation, etc.)
2. Technical context (framework indicators, error states, performance issues)
3. Development opportunities (improvements needed, bugs visible)
4. Agent recommendations for Harness Engineering system

Respond in JSON format:
{{
  "detected_elements": ["element1", "element2"],
  "technical_context": "description of technical aspects",
  "development_opportunities": ["opportunity1", "opportunity2"],
  "suggested_agents": ["agent1", "agent2"],
  "confidence": 0.9
}}"""


def estimated_image_bytes(image_data: str) -> int:
    return len(image_data) * 3 // 4


def validate_image(image_data: Any) -> None:
    """Reject missing, non-base64 or oversized image payloads."""
    if not image_data or not isinstance(image_data, str):
        raise ValidationError("Invalid image data")

    try:
        base64.b64decode(image_data, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Invalid base64 format") from None

    if estimated_image_bytes(image_data) > MAX_IMAGE_BYTES:
        raise ValidationError("Image too large (max 10MB)")


def fallback_analysis(context: str) -> Dict[str, Any]:
    return {
        "detected_elements": ["UI components", "interface elements"],
        "technical_context": f"Visual context for task: {context}",
        "development_opportunities": ["UI improvements needed", "user experience optimization"],
        "suggested_agents": ["frontend", "testing"],
        "confidence": 0.5,
        "fallback": True,
    }


class VisionClient:
    """Client for an OpenAI-compatible chat completions vision endpoint."""

    def __init__(self, api_url: str, api_key: Optional[str], model: str, timeout: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_url = api_url
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.transport = transport
        self.logger = get_logger("mcp.vision_client")

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _build_payload(self, image_data: str, context: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": ANALYSIS_PROMPT.format(context=context)},
                        {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{image_data}"}},
                    ],
                }
            ],
            "max_tokens": 400,
            "temperature": 0.1,
        }

    async def _complete(self, image_data: str, context: str) -> str:
        if not self.configured:
            raise ExternalServiceError("vision", "API key not configured")

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(
                self.api_url,
                json=self._build_payload(image_data, context),
                headers={"Authorization": f"Bearer {self.api_key}"},
            )

        if response.status_code != 200:
            raise ExternalServiceError("vision", f"HTTP {response.status_code}")

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise ExternalServiceError("vision", "Malformed completion response") from exc
        if not isinstance(content, str):
            raise ExternalServiceError("vision", "Malformed completion response")
        return content

    @staticmethod
    def _parse_content(content: str) -> Dict[str, Any]:
        try:
            parsed = json.loads(content)
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed
        return {
            "detected_elements": ["UI elements detected"],
            "technical_context": content[:200],
            "development_opportunities": ["Analysis available"],
            "suggested_agents": ["frontend"],
            "confidence": 0.7,
            "raw_response": content,
        }

    async def analyze(self, image_data: str, task_context: Optional[str] = None) -> Dict[str, Any]:
        """Analyze a base64 screenshot; falls back to a canned summary on failure."""
        context = task_context or DEFAULT_CONTEXT
        validate_image(image_data)

        try:
            content = await self._complete(image_data, context)
            analysis = self._parse_content(content)
        except (ExternalServiceError, httpx.HTTPError) as exc:
            self.logger.warning("Vision analysis failed, using fallback", error=str(exc))
            analysis = fallback_analysis(context)

        analysis.update(
            analyzed_at=datetime.now(timezone.utc).isoformat(),
            task_context=context,
            image_size_estimate=f"{round(estimated_image_bytes(image_data) / 1024)}KB",
        )
        return analysis
