"""Text-generation client producing marketing copy as validated JSON."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable

from openai import OpenAI

from audiobook_processing.adapters.ai.retry import call_with_retry
from audiobook_processing.core.logging_setup import timed
from audiobook_processing.errors import InvalidResponseError
from audiobook_processing.schemas.pipeline import GeneratedContent

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a professional book marketing expert. Always respond with valid JSON only."
MAX_CATEGORIES = 3
_DEFAULT_EXCERPT_CHARS = 3000


def default_prompt(transcript_text: str) -> str:
    excerpt = transcript_text[:_DEFAULT_EXCERPT_CHARS]
    if len(transcript_text) > _DEFAULT_EXCERPT_CHARS:
        excerpt += "..."
    return (
        "You are a professional book marketing expert. Based on the following audiobook "
        "transcription, generate:\n\n"
        "1. A compelling 500-1000 word description suitable for marketing\n"
        "2. Up to 3 relevant categories/genres\n"
        "3. A brief 2-3 sentence summary\n\n"
        f"Transcription excerpt (first {_DEFAULT_EXCERPT_CHARS} characters):\n"
        f"{excerpt}\n\n"
        "Please respond in the following JSON format:\n"
        '{\n  "description": "A compelling marketing description...",\n'
        '  "categories": ["Category1", "Category2", "Category3"],\n'
        '  "summary": "Brief summary..."\n}\n'
    )


def parse_generated_content(raw: str | None) -> GeneratedContent:
    """Validate the model's JSON reply; malformed replies are contract violations."""
    if not raw or not raw.strip():
        raise InvalidResponseError("Empty response from content generation model")
    try:
        payload: Any = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidResponseError("Invalid JSON response from content generation model") from exc
    if not isinstance(payload, dict):
        raise InvalidResponseError("Content generation response is not a JSON object")

    description = payload.get("description")
    summary = payload.get("summary")
    categories = payload.get("categories")
    if not isinstance(description, str) or not description.strip():
        raise InvalidResponseError("Content generation response is missing a description")
    if not isinstance(summary, str) or not summary.strip():
        raise InvalidResponseError("Content generation response is missing a summary")
    if not isinstance(categories, list):
        raise InvalidResponseError("Content generation response categories must be a list")

    return GeneratedContent(
        description=description,
        categories=[item for item in categories if isinstance(item, str)][:MAX_CATEGORIES],
        summary=summary,
    )


class ContentGenerationClient:
    def __init__(
        self,
        client: OpenAI,
        *,
        model: str = "gpt-4o-mini",
        max_attempts: int = 3,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._model = model
        self._max_attempts = max_attempts
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._sleep = sleep

    def generate(self, transcript_text: str, prompt: str | None = None) -> GeneratedContent:
        """Request description, categories and summary for a transcript."""
        user_prompt = prompt or default_prompt(transcript_text)

        def _request() -> GeneratedContent:
            completion = self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                response_format={"type": "json_object"},
            )
            choices = getattr(completion, "choices", None) or []
            content = choices[0].message.content if choices else None
            return parse_generated_content(content)

        with timed(logger, "ai.generate", model=self._model, prompt_chars=len(user_prompt)):
            return call_with_retry(
                _request,
                name="ai.generate",
                max_attempts=self._max_attempts,
                sleep=self._sleep,
            )


__all__ = ["ContentGenerationClient", "SYSTEM_PROMPT", "default_prompt", "parse_generated_content"]
