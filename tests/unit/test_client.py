"""Unit tests for the Gemini generation client."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from google.genai import types

from lazycoder.agents.client import (
    GeminiClient,
    GenerationClient,
    GenerationRequest,
    GenerationServiceError,
)
from lazycoder.config import GenerationConfig
from lazycoder.models import AnalysisResult, ImagePayload


@pytest.fixture
def sdk_client() -> MagicMock:
    """Mock google-genai client exposing aio.models.generate_content."""
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(return_value=MagicMock(text='{"ok": true}'))
    return client


@pytest.fixture
def gemini(sdk_client: MagicMock) -> GeminiClient:
    return GeminiClient(GenerationConfig(api_key="test-key"), client=sdk_client)


class TestGeminiClient:
    def test_requires_api_key(self):
        with pytest.raises(GenerationServiceError, match="API key is missing"):
            GeminiClient(GenerationConfig(api_key=None))

    def test_satisfies_protocol(self, gemini):
        assert isinstance(gemini, GenerationClient)

    @pytest.mark.asyncio
    async def test_plain_prompt(self, gemini, sdk_client):
        text = await gemini.generate(GenerationRequest(model="m", prompt="hello"))

        assert text == '{"ok": true}'
        kwargs = sdk_client.aio.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "m"
        assert kwargs["contents"] == "hello"
        assert kwargs["config"] is None

    @pytest.mark.asyncio
    async def test_image_schema_and_budget(self, gemini, sdk_client):
        request = GenerationRequest(
            model="vision",
            prompt="describe",
            image=ImagePayload(data=b"img", mime_type="image/jpeg"),
            response_schema=AnalysisResult,
            thinking_budget=1024,
        )

        await gemini.generate(request)

        kwargs = sdk_client.aio.models.generate_content.call_args.kwargs
        image_part, prompt = kwargs["contents"]
        assert isinstance(image_part, types.Part)
        assert image_part.inline_data.mime_type == "image/jpeg"
        assert prompt == "describe"
        config = kwargs["config"]
        assert config.response_mime_type == "application/json"
        assert config.thinking_config.thinking_budget == 1024

    @pytest.mark.asyncio
    async def test_json_mode_without_schema(self, gemini, sdk_client):
        await gemini.generate(GenerationRequest(model="m", prompt="p", json_mode=True))

        config = sdk_client.aio.models.generate_content.call_args.kwargs["config"]
        assert config.response_mime_type == "application/json"
        assert config.response_schema is None

    @pytest.mark.asyncio
    async def test_sdk_error_wrapped(self, gemini, sdk_client):
        sdk_client.aio.models.generate_content.side_effect = RuntimeError("503 unavailable")

        with pytest.raises(GenerationServiceError, match="503 unavailable"):
            await gemini.generate(GenerationRequest(model="m", prompt="p"))

    @pytest.mark.asyncio
    async def test_empty_response_passed_through(self, gemini, sdk_client):
        sdk_client.aio.models.generate_content.return_value = MagicMock(text=None)

        assert await gemini.generate(GenerationRequest(model="m", prompt="p")) is None
