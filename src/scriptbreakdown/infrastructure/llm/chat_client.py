from __future__ import annotations

import logging
import random
import time
from typing import Callable, Protocol

import openai

from scriptbreakdown.core.config import BreakdownSettings
from scriptbreakdown.core.errors import ConfigurationError, ExtractionError

logger = logging.getLogger(__name__)

ChatMessage = dict[str, str]

_RETRYABLE_ERRORS = (
    openai.RateLimitError,
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.InternalServerError,
)


class ChatClient(Protocol):
    def complete(
        self,
        messages: list[ChatMessage],
        *,
        max_tokens: int,
        temperature: float,
    ) -> str: ...


class OpenAIChatClient:
    """Chat completions over any OpenAI-compatible endpoint, with retries.

    Rate limits, timeouts, connection errors and 5xx responses are retried with
    exponential backoff plus jitter. Anything else, or exhausting the retries,
    raises ``ExtractionError``.
    """

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str,
        base_url: str | None = None,
        timeout_seconds: float = 120.0,
        max_retries: int = 3,
        initial_delay_seconds: float = 1.0,
        max_delay_seconds: float = 30.0,
        backoff_multiplier: float = 2.0,
        jitter_factor: float = 0.1,
        client: openai.OpenAI | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if client is None:
            if not api_key:
                raise ConfigurationError("No API key configured for the extraction model.")
            # Retries are handled here so they can be logged and bounded consistently.
            client = openai.OpenAI(
                api_key=api_key,
                base_url=base_url,
                timeout=timeout_seconds,
                max_retries=0,
            )
        self._client = client
        self.model = model
        self.max_retries = max(0, int(max_retries))
        self.initial_delay_seconds = initial_delay_seconds
        self.max_delay_seconds = max_delay_seconds
        self.backoff_multiplier = backoff_multiplier
        self.jitter_factor = jitter_factor
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: BreakdownSettings) -> OpenAIChatClient:
        return cls(
            api_key=settings.llm_api_key,
            model=settings.llm_model,
            base_url=settings.llm_base_url,
            timeout_seconds=settings.llm_timeout_seconds,
            max_retries=settings.llm_max_retries,
        )

    def complete(
        self,
        messages: list[ChatMessage],
        *,
        max_tokens: int,
        temperature: float,
    ) -> str:
        attempts_total = self.max_retries + 1
        for attempt in range(1, attempts_total + 1):
            try:
                response = self._client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    max_tokens=max_tokens,
                    temperature=temperature,
                )
            except _RETRYABLE_ERRORS as exc:
                if attempt >= attempts_total:
                    raise ExtractionError(
                        f"Extraction request failed after {attempts_total} attempts: {exc}"
                    ) from exc
                delay = self._backoff_delay(attempt)
                logger.warning(
                    "Extraction request failed (attempt %s/%s), retrying in %.1fs: %s",
                    attempt,
                    attempts_total,
                    delay,
                    exc,
                )
                self._sleep(delay)
                continue
            except openai.OpenAIError as exc:
                raise ExtractionError(f"Extraction request failed: {exc}") from exc

            if not response.choices:
                raise ExtractionError("Extraction response contained no choices.")
            content = response.choices[0].message.content
            return content or ""
        raise ExtractionError("Extraction request was not attempted.")

    def _backoff_delay(self, attempt: int) -> float:
        base = self.initial_delay_seconds * (self.backoff_multiplier ** (attempt - 1))
        capped = min(base, self.max_delay_seconds)
        jitter = capped * self.jitter_factor * (random.random() * 2 - 1)
        return max(0.0, capped + jitter)
