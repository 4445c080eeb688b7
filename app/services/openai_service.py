# app/services/openai_service.py
"""
OpenAI Service
Thin async wrapper over the chat completions API, shared by the sentiment
classifier and the weekly insight author. Retry, timeout and circuit
breaking policy live with the callers.
"""

import asyncio
from datetime import UTC, datetime
from typing import Any

import openai
from openai import AsyncOpenAI

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class OpenAIServiceError(Exception):
    """Base exception for OpenAI service errors."""

    def __init__(self, message: str, api_error: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.api_error = api_error
        self.recoverable = recoverable


class OpenAIService:
    """Lazily-initialized chat completion client."""

    def __init__(self):
        self.client = None

    def _get_client(self) -> AsyncOpenAI:
        """Initialize OpenAI async client on first use."""
        if self.client is not None:
            return self.client

        if not settings.openai_configured():
            raise OpenAIServiceError("OPENAI_API_KEY not configured in settings", recoverable=False)

        try:
            # Per-call timeouts are enforced by callers; the SDK retries are disabled
            self.client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY, max_retries=0)
            logger.info("OpenAI client initialized", model=settings.OPENAI_MODEL)
            return self.client
        except Exception as e:
            logger.error("Failed to initialize OpenAI client", error=str(e))
            raise OpenAIServiceError(f"OpenAI client initialization failed: {e}") from e

    async def complete(
        self,
        system_message: str,
        user_message: str,
        *,
        model: str | None = None,
        json_mode: bool = True,
        max_tokens: int | None = None,
    ) -> str:
        """
        Run one chat completion and return the text content.

        Raises:
            OpenAIServiceError: on API errors or an empty reply
        """
        client = self._get_client()
        request: dict[str, Any] = {
            "model": model or settings.OPENAI_MODEL,
            "messages": [
                {"role": "system", "content": system_message},
                {"role": "user", "content": user_message},
            ],
            "max_tokens": max_tokens or settings.OPENAI_MAX_TOKENS,
            "temperature": settings.OPENAI_TEMPERATURE,
        }
        if json_mode:
            request["response_format"] = {"type": "json_object"}

        try:
            response = await client.chat.completions.create(**request)
        except openai.RateLimitError as e:
            raise OpenAIServiceError("OpenAI rate limit hit", api_error=str(e)) from e
        except openai.APITimeoutError as e:
            raise OpenAIServiceError("OpenAI API timeout", api_error=str(e)) from e
        except openai.APIError as e:
            status_code = getattr(e, "status_code", None)
            recoverable = not (status_code and 400 <= status_code < 500 and status_code != 429)
            raise OpenAIServiceError(
                "OpenAI API error", api_error=str(e), recoverable=recoverable
            ) from e

        if not response.choices or not response.choices[0].message.content:
            raise OpenAIServiceError("Empty response from OpenAI API")

        content = response.choices[0].message.content.strip()
        logger.debug(
            "OpenAI API call successful",
            model=request["model"],
            response_length=len(content),
            usage_tokens=response.usage.total_tokens if response.usage else 0,
        )
        return content

    async def health_check(self) -> dict[str, Any]:
        """
        Health check for OpenAI service.

        Returns:
            dict: Health status and configuration
        """
        health_data = {
            "healthy": settings.openai_configured(),
            "service": "openai_service",
            "configured": settings.openai_configured(),
            "configuration": {
                "model": settings.OPENAI_MODEL,
                "insights_model": settings.OPENAI_INSIGHTS_MODEL,
                "max_tokens": settings.OPENAI_MAX_TOKENS,
                "temperature": settings.OPENAI_TEMPERATURE,
            },
            "checked_at": datetime.now(UTC).isoformat(),
        }
        if not settings.openai_configured():
            health_data["error"] = "OPENAI_API_KEY not set"
            return health_data

        try:
            client = self._get_client()
            await asyncio.wait_for(
                client.chat.completions.create(
                    model=settings.OPENAI_MODEL,
                    messages=[{"role": "user", "content": "Test"}],
                    max_tokens=1,
                ),
                timeout=5,
            )
            health_data["api_connectivity"] = "ok"
        except Exception as api_error:
            health_data["healthy"] = False
            health_data["api_connectivity"] = "error"
            health_data["api_error"] = str(api_error)

        return health_data


# Singleton instance for application use
openai_service = OpenAIService()
