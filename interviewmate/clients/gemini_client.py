"""
interviewmate/clients/gemini_client.py — Google Gemini API client
Async single-shot text generation with a hard timeout. Upstream failures are
raised to the caller; classify_error() maps them onto fallback reasons.
"""
from __future__ import annotations

import asyncio
import time
from functools import lru_cache
from typing import Optional

import google.generativeai as genai
from google.api_core.exceptions import (
    DeadlineExceeded,
    GoogleAPIError,
    ResourceExhausted,
    TooManyRequests,
)
from loguru import logger

from interviewmate.config import get_settings
from interviewmate.core import logging as app_logging
from interviewmate.models import FallbackReason


class GeminiNotConfiguredError(Exception):
    """Raised when no API key is configured."""


class GeminiClient:
    def __init__(
        self,
        api_key: str,
        model: str,
        temperature: float = 0.7,
        max_output_tokens: int = 1024,
        timeout_seconds: float = 30.0,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.timeout_seconds = timeout_seconds
        self._configured = bool(api_key)
        if self._configured:
            genai.configure(api_key=api_key)

    @property
    def configured(self) -> bool:
        return self._configured

    def _model(self) -> "genai.GenerativeModel":
        return genai.GenerativeModel(
            self.model,
            generation_config=genai.types.GenerationConfig(
                temperature=self.temperature,
                max_output_tokens=self.max_output_tokens,
            ),
        )

    async def generate(self, prompt: str, operation: str = "unknown", budget_used: int = 0) -> str:
        """
        Send one prompt and return the response text.
        Raises GeminiNotConfiguredError, asyncio.TimeoutError or a GoogleAPIError.
        """
        if not self._configured:
            raise GeminiNotConfiguredError("GEMINI_API_KEY is not set")

        start_time = time.monotonic()
        outcome = "error"
        try:
            response = await asyncio.wait_for(
                self._model().generate_content_async(prompt),
                timeout=self.timeout_seconds,
            )
            try:
                text = (response.text or "").strip()
            except ValueError as exc:
                # Blocked or empty candidate: no text part to read
                logger.warning(f"Gemini {operation} returned no text: {exc}")
                text = ""
            outcome = "success"
            return text
        except asyncio.TimeoutError:
            outcome = "timeout"
            logger.warning(f"Gemini {operation} timed out after {self.timeout_seconds}s")
            raise
        except ResourceExhausted:
            outcome = "quota_exceeded"
            raise
        finally:
            app_logging.log_model_call(
                model=self.model,
                operation=operation,
                latency_ms=(time.monotonic() - start_time) * 1000,
                outcome=outcome,
                budget_used=budget_used,
            )


def classify_error(exc: BaseException) -> Optional[FallbackReason]:
    """Map an upstream failure to a fallback reason; None means not an upstream failure."""
    if isinstance(exc, GeminiNotConfiguredError):
        return FallbackReason.NOT_CONFIGURED
    if isinstance(exc, (ResourceExhausted, TooManyRequests)):
        return FallbackReason.QUOTA_EXCEEDED
    if isinstance(exc, (asyncio.TimeoutError, DeadlineExceeded)):
        return FallbackReason.TIMEOUT
    if isinstance(exc, GoogleAPIError):
        return FallbackReason.UNAVAILABLE
    return None


@lru_cache()
def get_gemini_client() -> GeminiClient:
    settings = get_settings()
    return GeminiClient(
        api_key=settings.gemini_api_key if settings.gemini_configured else "",
        model=settings.gemini_model,
        temperature=settings.gemini_temperature,
        max_output_tokens=settings.gemini_max_output_tokens,
        timeout_seconds=settings.gemini_timeout_seconds,
    )
