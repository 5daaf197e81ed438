"""
Pytest Configuration and Fixtures

Shared fixtures for all tests.
"""

import asyncio
from typing import List, Optional, Set

import pytest

from scriptvision.core import config as config_module
from scriptvision.core.config import ScriptVisionConfig
from scriptvision.llm.api_clients import APIError, ImagePayload, TextResponse


SAMPLE_SCRIPT = (
    "Every morning Sarah walked to the small cafe on the corner of her street. "
    "She ordered the same coffee and sat by the window watching people hurry past. "
    "One rainy afternoon a stranger left a worn notebook on the table beside her. "
    "Inside she found sketches of her own neighbourhood drawn decades ago. "
    "She spent the evening searching old records at the library until the lights went dark. "
    "By midnight she knew the artist had lived in her apartment long before she was born. "
    "The next day she returned the notebook to the cafe with a note of thanks. "
    "Weeks later a letter arrived from the artist's granddaughter, and the two finally met."
)


class FakeImageClient:
    """In-process stand-in for the image provider."""

    def __init__(self, fail_on: Optional[Set[int]] = None, delay: float = 0.0, b64_length: int = 4000):
        self.fail_on = fail_on or set()
        self.delay = delay
        self.b64_data = "A" * b64_length
        self.calls: List[dict] = []

    async def generate_image(self, prompt, model=None, size=None, quality=None):
        self.calls.append({"prompt": prompt, "model": model, "size": size, "quality": quality})
        if self.delay:
            await asyncio.sleep(self.delay)
        if len(self.calls) in self.fail_on:
            raise APIError("HTTP 500: provider unavailable", 500)
        return ImagePayload(b64_data=self.b64_data)


class FakeTextClient:
    """In-process stand-in for the chat provider."""

    def __init__(self, text: str = "", error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.calls: List[dict] = []

    async def chat(self, prompt, system=None, model=None, temperature=0.7, max_tokens=2000, timeout=None):
        self.calls.append({"prompt": prompt, "system": system, "model": model, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return TextResponse(text=self.text, model=model or "fake-model")


@pytest.fixture(autouse=True)
def jwt_secret(monkeypatch):
    """Every test runs with a known signing secret."""
    monkeypatch.setenv("JWT_SECRET", "test-secret")
    return "test-secret"


@pytest.fixture(autouse=True)
def reset_global_config():
    """Keep the process-wide config from leaking between tests."""
    yield
    config_module._config = None


@pytest.fixture
def sample_script() -> str:
    """A short multi-sentence narration script."""
    return SAMPLE_SCRIPT


@pytest.fixture
def fast_config() -> ScriptVisionConfig:
    """Config with no inter-request delay and a generous rate limit."""
    config = ScriptVisionConfig()
    config.generation.inter_request_delay = 0.0
    config.server.rate_limit = "1000/minute"
    config.server.environment = "development"
    return config


@pytest.fixture
def image_client() -> FakeImageClient:
    return FakeImageClient()


@pytest.fixture
def text_client() -> FakeTextClient:
    return FakeTextClient()


@pytest.fixture
def make_image_client():
    """Factory for image clients with failure/delay options."""
    return FakeImageClient


@pytest.fixture
def make_text_client():
    """Factory for text clients returning fixed replies or errors."""
    return FakeTextClient
