"""
ScriptVision LLM Module

Outbound text and image provider clients.
"""

from .api_clients import (
    APIError,
    APITimeoutError,
    ContentRejectionError,
    ImagePayload,
    OpenAIClient,
    RateLimitError,
    TextResponse,
)

__all__ = [
    'APIError',
    'APITimeoutError',
    'ContentRejectionError',
    'ImagePayload',
    'OpenAIClient',
    'RateLimitError',
    'TextResponse',
]
