"""
ScriptVision API Clients

Async OpenAI client used for the two external capabilities of the pipeline:

- Chat completions (generative scene breakdown)
- Image generation (one vertical image per scene)
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from scriptvision.core.env_loader import OPENAI_KEY_ENV, get_openai_api_key
from scriptvision.core.logging_config import get_logger

logger = get_logger("llm.api_clients")


# ============================================================================
#  EXCEPTIONS
# ============================================================================

class APIError(Exception):
    """Base exception for API errors."""
    def __init__(self, message: str, status_code: int = None, response: str = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class RateLimitError(APIError):
    """Raised when API rate limit is exceeded."""
    pass


class APITimeoutError(APIError):
    """Raised when API request times out."""
    pass


class ContentRejectionError(APIError):
    """Raised when content is rejected due to policy violations."""
    pass


# Provider error codes that mean the prompt itself was refused
CONTENT_REJECTION_CODES = (
    "content_policy_violation",
    "content_filter",
)


# ============================================================================
#  RESPONSE TYPES
# ============================================================================

@dataclass
class TextResponse:
    """Response from text generation API."""
    text: str
    model: str
    usage: Optional[Dict] = None
    raw_response: Optional[Dict] = None


@dataclass
class ImagePayload:
    """A single encoded image returned by the image API."""
    b64_data: str
    mime_type: str = "image/png"
    revised_prompt: Optional[str] = None


# ============================================================================
#  OPENAI CLIENT
# ============================================================================

class OpenAIClient:
    """Client for the OpenAI chat and image endpoints."""

    BASE_URL = "https://api.openai.com/v1"
    TEXT_MODEL = "gpt-4o-mini"
    IMAGE_MODEL = "dall-e-3"

    def __init__(
        self,
        api_key: str = None,
        base_url: str = None,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        api_key_env: str = OPENAI_KEY_ENV,
    ):
        api_key = api_key or get_openai_api_key(api_key_env)
        if not api_key:
            raise ValueError(f"OpenAIClient requires an API key ({api_key_env} is not set)")
        self.api_key = api_key
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    async def _post(self, path: str, body: Dict[str, Any], timeout: Optional[float] = None) -> Dict[str, Any]:
        """POST a JSON body and map provider failures onto APIError subclasses."""
        url = f"{self.base_url}{path}"
        timeout = self.timeout if timeout is None else timeout
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.post(url, json=body, headers=self._get_headers())
        except httpx.TimeoutException as e:
            raise APITimeoutError(f"Request timed out: {e}")
        except httpx.HTTPError as e:
            raise APIError(f"Transport error: {e}")

        if response.status_code >= 400:
            self._raise_for_status(response)

        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise APIError(f"Invalid JSON from provider: {e}", response.status_code, response.text)

    def _raise_for_status(self, response: httpx.Response) -> None:
        text = response.text
        message = text
        code = None
        try:
            err = response.json().get("error") or {}
            message = err.get("message") or text
            code = err.get("code") or err.get("type")
        except (json.JSONDecodeError, AttributeError):
            pass

        status = response.status_code
        if status == 429:
            raise RateLimitError(f"Rate limit exceeded: {message}", status, text)
        if code in CONTENT_REJECTION_CODES:
            raise ContentRejectionError(f"Content rejected: {message}", status, text)
        raise APIError(f"HTTP {status}: {message}", status, text)

    async def chat(
        self,
        prompt: str,
        system: str = None,
        model: str = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        timeout: Optional[float] = None,
    ) -> TextResponse:
        """Generate text using a chat completion. `timeout` overrides the client default for this call."""
        model = model or self.TEXT_MODEL
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        result = await self._post("/chat/completions", {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }, timeout=timeout)

        text = ""
        choices = result.get("choices", [])
        if choices:
            text = choices[0].get("message", {}).get("content", "") or ""

        return TextResponse(text=text, model=model, usage=result.get("usage"), raw_response=result)

    async def generate_image(
        self,
        prompt: str,
        model: str = None,
        size: str = "1024x1792",
        quality: str = "standard",
    ) -> ImagePayload:
        """Generate a single image and return it base64 encoded."""
        model = model or self.IMAGE_MODEL
        logger.debug(f"Image request ({model}, {size}): {prompt[:100]}...")

        result = await self._post("/images/generations", {
            "model": model,
            "prompt": prompt,
            "n": 1,
            "size": size,
            "quality": quality,
            "response_format": "b64_json",
        })

        data = result.get("data") or []
        if not data or not data[0].get("b64_json"):
            raise APIError("Image response contained no image data", None, json.dumps(result)[:500])

        return ImagePayload(
            b64_data=data[0]["b64_json"],
            revised_prompt=data[0].get("revised_prompt"),
        )
