"""Marketing content generation from a finished transcription."""

from __future__ import annotations

from collections import Counter
from dataclasses import replace
import logging
import math
import re
import time

from audiobook_processing.adapters.ai.generation import ContentGenerationClient
from audiobook_processing.errors import ContentGenerationError
from audiobook_processing.schemas.pipeline import (
    ContentGenerationOptions,
    ContentGenerationResult,
    ContentMetadata,
    GeneratedContent,
    TranscriptionResult,
)

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "General Interest"
MAX_CATEGORIES = 3
MAX_KEYWORDS = 8
_KEYWORD_CANDIDATES = 10
_KEYWORD_MIN_LENGTH = 5
_KEYWORD_MIN_OCCURRENCES = 3
_SHORT_DESCRIPTION_CHARS = 200

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
_NON_WORD_RE = re.compile(r"[^\w\s]")

CATEGORY_ALIASES: dict[str, str] = {
    "self-help": "Self-Help",
    "business": "Business",
    "fiction": "Fiction",
    "non-fiction": "Non-Fiction",
    "biography": "Biography & Memoir",
    "history": "History",
    "science": "Science & Technology",
    "health": "Health & Wellness",
    "psychology": "Psychology",
    "philosophy": "Philosophy",
    "education": "Education",
    "politics": "Politics & Social Sciences",
}

TONE_INSTRUCTIONS: dict[str, str] = {
    "professional": "using clear, authoritative language that builds credibility",
    "casual": "using conversational, approachable language that feels friendly",
    "academic": "using scholarly, precise language appropriate for educational content",
    "marketing": "using persuasive, engaging language designed to drive sales",
}

STOPWORDS = frozenset(
    {
        "about", "after", "again", "against", "before", "being", "between",
        "during", "from", "having", "into", "more", "most", "other", "some",
        "such", "than", "that", "them", "these", "they", "this", "those",
        "through", "time", "very", "were", "will", "with", "would",
    }
)


class ContentGenerationService:
    def __init__(
        self,
        client: ContentGenerationClient,
        *,
        excerpt_chars: int = 4000,
        defaults: ContentGenerationOptions | None = None,
    ) -> None:
        self._client = client
        self._excerpt_chars = excerpt_chars
        self._defaults = defaults or ContentGenerationOptions()

    @property
    def defaults(self) -> ContentGenerationOptions:
        return replace(self._defaults)

    def generate_from_transcription(
        self,
        transcription: TranscriptionResult,
        title: str | None = None,
        author: str | None = None,
        options: ContentGenerationOptions | None = None,
    ) -> ContentGenerationResult:
        """Generate, then post-process, description, summary, categories and keywords.

        Remote failures of any kind surface as ``ContentGenerationError``; the
        local post-processing always runs on whatever the model returned.
        """
        started = time.perf_counter()
        config = options or self.defaults

        context = build_context(transcription, title, author)
        excerpt = create_smart_excerpt(transcription.text, self._excerpt_chars)
        prompt = build_prompt(context, excerpt, config)
        try:
            generated = self._client.generate(excerpt, prompt)
        except Exception as exc:
            logger.warning("content.generation_failed reason=%s", type(exc).__name__)
            raise ContentGenerationError(f"Content generation failed: {exc}") from exc

        description = truncate_words(generated.description, config.max_description_words)
        if len(description) < _SHORT_DESCRIPTION_CHARS:
            logger.warning("content.description_short chars=%d", len(description))
        categories = normalize_categories(generated.categories)
        keywords = extract_keywords(transcription.text, categories) if config.include_keywords else []
        enhanced = GeneratedContent(description=description, categories=categories, summary=generated.summary.strip())

        result = ContentGenerationResult(
            description=enhanced.description,
            summary=enhanced.summary,
            categories=enhanced.categories,
            keywords=keywords,
            metadata=ContentMetadata(
                content_length=len(enhanced.description),
                processing_time_ms=int((time.perf_counter() - started) * 1000),
                confidence=score_confidence(enhanced, transcription),
            ),
        )
        logger.info(
            "content.generated categories=%d keywords=%d description_chars=%d confidence=%.2f",
            len(result.categories),
            len(result.keywords),
            result.metadata.content_length,
            result.metadata.confidence,
        )
        return result


def build_context(transcription: TranscriptionResult, title: str | None, author: str | None) -> str:
    parts: list[str] = []
    if title:
        parts.append(f'Title: "{title}"')
    if author:
        parts.append(f"Author: {author}")
    parts.append(f"Duration: {math.floor(transcription.duration / 60 + 0.5)} minutes")
    parts.append(f"Word count: {transcription.word_count:,} words")
    parts.append(f"Transcription confidence: {transcription.confidence * 100:.1f}%")
    return " | ".join(parts)


def create_smart_excerpt(text: str, max_chars: int) -> str:
    """Sample sentences from the opening 30% and the 40-70% band of the text.

    Stops before exceeding roughly ``max_chars / 5`` words or ``max_chars``
    characters; falls back to a raw prefix when no sentence fits.
    """
    if len(text) <= max_chars:
        return text

    sentences = _SENTENCE_SPLIT_RE.split(text)
    total = len(sentences)
    window = sentences[: math.floor(total * 0.3)] + sentences[math.floor(total * 0.4) : math.floor(total * 0.7)]
    target_words = max_chars / 5

    pieces: list[str] = []
    words = 0
    chars = 0
    for sentence in window:
        stripped = sentence.strip()
        if not stripped:
            continue
        sentence_words = len(stripped.split())
        piece = f"{stripped}. "
        if words + sentence_words > target_words or chars + len(piece) > max_chars:
            break
        pieces.append(piece)
        words += sentence_words
        chars += len(piece)

    excerpt = "".join(pieces).strip()
    return excerpt or text[:max_chars]


def category_guidance(target_categories: list[str]) -> str:
    if not target_categories:
        return "(choose from standard audiobook categories)"
    return f"(prefer these if relevant: {', '.join(target_categories)})"


def build_prompt(context: str, excerpt: str, options: ContentGenerationOptions) -> str:
    tone = TONE_INSTRUCTIONS.get(options.tone, TONE_INSTRUCTIONS["marketing"])
    return f"""
You are an expert book marketing consultant and literary analyst. Your task is to create compelling marketing content for an audiobook based on its transcription.

CONTEXT INFORMATION:
{context}

CONTENT REQUIREMENTS:
- Description: {options.max_description_words} words maximum, {tone}
- Summary: 2-3 compelling sentences that hook potential listeners
- Categories: Up to 3 most relevant genres/categories {category_guidance(options.target_categories)}

TRANSCRIPTION EXCERPT:
{excerpt}

Please analyze the content thoroughly and provide:

1. A compelling marketing description that:
   - Highlights the main themes and key insights
   - Uses engaging language that appeals to the target audience
   - Includes specific details that make the content unique
   - Avoids generic language and cliches
   - Maintains the appropriate {options.tone} tone

2. A powerful summary that:
   - Captures the essence in 2-3 sentences
   - Creates curiosity and urgency
   - Highlights the key value proposition

3. Precise categories that:
   - Reflect the actual content accurately
   - Use standard genre classifications
   - Are specific enough to help with discoverability

Respond in this exact JSON format:
{{
  "description": "Your compelling marketing description...",
  "summary": "Your powerful 2-3 sentence summary...",
  "categories": ["Category1", "Category2", "Category3"]
}}"""


def truncate_words(text: str, max_words: int) -> str:
    words = text.split()
    if len(words) > max_words:
        return " ".join(words[:max_words]) + "..."
    return text.strip()


def normalize_category(category: str) -> str:
    cleaned = category.strip()
    alias = CATEGORY_ALIASES.get(cleaned.lower())
    if alias is not None:
        return alias
    return " ".join(word[:1].upper() + word[1:].lower() for word in cleaned.split())


def normalize_categories(categories: list[str]) -> list[str]:
    """Cap at three, drop blanks, normalize and de-duplicate; never empty."""
    normalized: list[str] = []
    for category in categories[:MAX_CATEGORIES]:
        if not category or not category.strip():
            continue
        name = normalize_category(category)
        if name not in normalized:
            normalized.append(name)
    return normalized or [DEFAULT_CATEGORY]


def extract_keywords(text: str, categories: list[str]) -> list[str]:
    """Frequent long words from the transcript plus multi-word category names."""
    words = [word for word in _NON_WORD_RE.sub(" ", text.lower()).split() if len(word) >= _KEYWORD_MIN_LENGTH]
    counts = Counter(words)
    frequent = [
        word
        for word, occurrences in counts.most_common()
        if occurrences >= _KEYWORD_MIN_OCCURRENCES and word not in STOPWORDS
    ][:_KEYWORD_CANDIDATES]

    keywords: list[str] = []
    for keyword in frequent + [category.lower() for category in categories if " " in category]:
        if keyword not in keywords:
            keywords.append(keyword)
    return keywords[:MAX_KEYWORDS]


def score_confidence(content: GeneratedContent, transcription: TranscriptionResult) -> float:
    confidence = 0.5 + transcription.confidence * 0.3
    if len(content.description) > 400:
        confidence += 0.1
    if len(content.description) > 600:
        confidence += 0.1
    if len(content.categories) >= 2:
        confidence += 0.1
    return min(1.0, max(0.0, confidence))


__all__ = [
    "CATEGORY_ALIASES",
    "ContentGenerationService",
    "DEFAULT_CATEGORY",
    "build_context",
    "create_smart_excerpt",
    "extract_keywords",
    "normalize_categories",
    "normalize_category",
    "score_confidence",
    "truncate_words",
]
