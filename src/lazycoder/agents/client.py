"""Generation service client for LazyCoder.

The pipeline only depends on a narrow request/response contract: a prompt,
an optional image, an optional declared output schema, and free text back.
``GenerationClient`` captures that contract as a Protocol so stages can be
exercised with fakes; ``GeminiClient`` implements it on top of the
google-genai SDK.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import structlog
from google import genai
from google.genai import types
from pydantic import BaseModel, ConfigDict, Field

from lazycoder.config import GenerationConfig
from lazycoder.models import ImagePayload

logger = structlog.get_logger(__name__)


class GenerationServiceError(Exception):
    """Raised when the generation service call itself fails."""

    pass


class GenerationRequest(BaseModel):
    """A single call to the generation service.

    Attributes:
        model: Model identifier to use
        prompt: Instructional text
        image: Optional image payload sent alongside the prompt
        response_schema: Optional declared output schema (a pydantic type,
            ``list[...]`` of one, or a JSON-schema dict)
        json_mode: Ask the service for a JSON response body
        thinking_budget: Optional reasoning token budget
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    model: str
    prompt: str
    image: ImagePayload | None = None
    response_schema: Any = None
    json_mode: bool = False
    thinking_budget: int | None = Field(default=None, ge=0)


@runtime_checkable
class GenerationClient(Protocol):
    """Protocol for the opaque generation service."""

    async def generate(self, request: GenerationRequest) -> str | None:
        """Send one request and return the raw response text.

        Args:
            request: The generation request

        Returns:
            Response text; None or empty when the service produced nothing

        Raises:
            GenerationServiceError: If the call fails at the transport level
        """
        ...


class GeminiClient:
    """GenerationClient backed by Google's Gemini API.

    Attributes:
        config: Generation configuration with the API key
    """

    def __init__(self, config: GenerationConfig, client: genai.Client | None = None) -> None:
        """Initialize the Gemini client.

        Args:
            config: Generation configuration
            client: Pre-built google-genai client (tests inject one)

        Raises:
            GenerationServiceError: If no client is given and no API key is configured
        """
        self.config = config
        if client is None:
            if not config.api_key:
                raise GenerationServiceError(
                    "API key is missing. Set LAZYCODER_GENERATION__API_KEY or "
                    "generation.api_key in the configuration file."
                )
            client = genai.Client(api_key=config.api_key)
        self._client = client
        self._logger = logger.bind(component="GeminiClient")

    def _build_config(self, request: GenerationRequest) -> types.GenerateContentConfig | None:
        options: dict[str, Any] = {}
        if request.json_mode or request.response_schema is not None:
            options["response_mime_type"] = "application/json"
        if request.response_schema is not None:
            options["response_schema"] = request.response_schema
        if request.thinking_budget is not None:
            options["thinking_config"] = types.ThinkingConfig(
                thinking_budget=request.thinking_budget
            )
        if not options:
            return None
        return types.GenerateContentConfig(**options)

    def _build_contents(self, request: GenerationRequest) -> Any:
        if request.image is None:
            return request.prompt
        return [
            types.Part.from_bytes(data=request.image.data, mime_type=request.image.mime_type),
            request.prompt,
        ]

    async def generate(self, request: GenerationRequest) -> str | None:
        """Send one request to Gemini.

        Args:
            request: The generation request

        Returns:
            The response text, possibly None

        Raises:
            GenerationServiceError: If the SDK call raises
        """
        self._logger.debug(
            "generation_request",
            model=request.model,
            prompt_chars=len(request.prompt),
            has_image=request.image is not None,
            has_schema=request.response_schema is not None,
            thinking_budget=request.thinking_budget,
        )
        try:
            response = await self._client.aio.models.generate_content(
                model=request.model,
                contents=self._build_contents(request),
                config=self._build_config(request),
            )
        except Exception as e:
            self._logger.error("generation_failed", model=request.model, error=str(e))
            raise GenerationServiceError(str(e)) from e

        text = response.text
        self._logger.debug(
            "generation_response",
            model=request.model,
            response_chars=len(text) if text else 0,
        )
        return text
