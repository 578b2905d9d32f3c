"""Content generation service tests."""

from __future__ import annotations

import unittest

from _fakes import FakeOpenAI, completion, marketing_payload, no_sleep, status_error

from audiobook_processing.adapters.ai import ContentGenerationClient
from audiobook_processing.errors import ContentGenerationError, QuotaExceededError
from audiobook_processing.schemas.pipeline import (
    ContentGenerationOptions,
    GeneratedContent,
    TranscriptionMetadata,
    TranscriptionResult,
)
from audiobook_processing.services.content_generation import (
    ContentGenerationService,
    create_smart_excerpt,
    extract_keywords,
    normalize_categories,
    score_confidence,
    truncate_words,
)


def _transcription(text: str, confidence: float = 1.0) -> TranscriptionResult:
    return TranscriptionResult(
        text=text,
        duration=600.0,
        word_count=len(text.split()),
        confidence=confidence,
        metadata=TranscriptionMetadata(original_file_size=1024, processing_time_ms=10),
    )


class ContentGenerationServiceTests(unittest.TestCase):
    def _service(self, fake: FakeOpenAI) -> ContentGenerationService:
        return ContentGenerationService(ContentGenerationClient(fake, sleep=no_sleep))

    def test_post_processes_model_reply(self) -> None:
        text = "The lighthouse keeper watched the harbor. " * 5
        fake = FakeOpenAI(
            completions=[completion(marketing_payload(categories=["self-help", "Self-Help", "deep sea stories"]))]
        )

        result = self._service(fake).generate_from_transcription(_transcription(text), "The Deep", "A. Navigator")

        self.assertEqual(result.categories, ["Self-Help", "Deep Sea Stories"])
        self.assertIn("lighthouse", result.keywords)
        self.assertIn("deep sea stories", result.keywords)
        self.assertLessEqual(len(result.keywords), 8)
        self.assertEqual(result.metadata.content_length, len(result.description))
        self.assertGreaterEqual(result.metadata.confidence, 0.0)
        self.assertLessEqual(result.metadata.confidence, 1.0)
        prompt = fake.completions.calls[0]["messages"][1]["content"]
        self.assertIn('Title: "The Deep"', prompt)
        self.assertIn("Author: A. Navigator", prompt)

    def test_categories_always_between_one_and_three(self) -> None:
        replies = [[], ["", "  "], ["a", "b", "c", "d", "e"], ["fiction"]]
        for categories in replies:
            with self.subTest(categories=categories):
                fake = FakeOpenAI(completions=[completion(marketing_payload(categories=categories))])
                result = self._service(fake).generate_from_transcription(_transcription("words"))
                self.assertGreaterEqual(len(result.categories), 1)
                self.assertLessEqual(len(result.categories), 3)

    def test_description_truncated_to_word_limit(self) -> None:
        fake = FakeOpenAI(completions=[completion(marketing_payload(description="word " * 120))])
        options = ContentGenerationOptions(max_description_words=50, include_keywords=False)

        result = self._service(fake).generate_from_transcription(_transcription("text"), options=options)

        self.assertTrue(result.description.endswith("..."))
        self.assertLessEqual(len(result.description.split()), 51)
        self.assertEqual(result.keywords, [])

    def test_remote_failures_become_generation_errors(self) -> None:
        fake = FakeOpenAI(completions=[status_error(429, "quota", code="insufficient_quota")])

        with self.assertRaises(ContentGenerationError) as context:
            self._service(fake).generate_from_transcription(_transcription("text"))

        self.assertTrue(str(context.exception).startswith("Content generation failed:"))
        self.assertIsInstance(context.exception.__cause__, QuotaExceededError)
        self.assertFalse(context.exception.retryable)

    def test_target_categories_and_tone_reach_the_prompt(self) -> None:
        fake = FakeOpenAI(completions=[completion(marketing_payload())])
        options = ContentGenerationOptions(target_categories=["History"], tone="academic")

        self._service(fake).generate_from_transcription(_transcription("text"), options=options)

        prompt = fake.completions.calls[0]["messages"][1]["content"]
        self.assertIn("prefer these if relevant: History", prompt)
        self.assertIn("scholarly", prompt)


class ContentHelperTests(unittest.TestCase):
    def test_short_text_is_its_own_excerpt(self) -> None:
        self.assertEqual(create_smart_excerpt("Short text.", 4000), "Short text.")

    def test_long_text_excerpt_stays_within_limit(self) -> None:
        text = " ".join(f"Sentence number {n} is here." for n in range(2000))
        excerpt = create_smart_excerpt(text, 4000)
        self.assertTrue(excerpt)
        self.assertLessEqual(len(excerpt), 4000)

    def test_truncate_words_keeps_short_text(self) -> None:
        self.assertEqual(truncate_words("  a few words ", 10), "a few words")
        self.assertEqual(truncate_words("one two three", 2), "one two...")

    def test_normalize_categories_defaults_to_general_interest(self) -> None:
        self.assertEqual(normalize_categories([]), ["General Interest"])
        self.assertEqual(normalize_categories(["business", "BUSINESS"]), ["Business"])

    def test_keywords_require_length_and_frequency(self) -> None:
        text = "Ocean ocean OCEAN! tide tide tide. Whales whales. these these these"
        self.assertEqual(extract_keywords(text, ["History"]), ["ocean"])

    def test_keywords_rank_by_frequency_and_cap(self) -> None:
        words = [
            "lighthouse", "harbor", "keeper", "voyage", "compass", "anchor",
            "sailor", "beacon", "coral", "island", "current", "glacier",
        ]
        ranked = " ".join(word for rank, word in enumerate(words) for _ in range(14 - rank))
        few = " ".join(word for rank, word in enumerate(words[:6]) for _ in range(8 - rank))
        noise = " through" * 20 + " storm storm"
        cases = {
            "top_ten_then_capped_at_eight": (
                ranked + noise,
                ["Science & Technology", "History"],
                words[:8],
            ),
            "multi_word_categories_appended_once": (
                few + noise,
                ["Science & Technology", "History", "Science & Technology"],
                words[:6] + ["science & technology"],
            ),
        }
        for name, (text, categories, expected) in cases.items():
            with self.subTest(case=name):
                self.assertEqual(extract_keywords(text, categories), expected)

    def test_confidence_rewards_length_and_categories(self) -> None:
        transcription = _transcription("text", confidence=1.0)
        short = score_confidence(GeneratedContent(description="d", categories=["A"], summary="s"), transcription)
        rich = score_confidence(GeneratedContent(description="d" * 700, categories=["A", "B"], summary="s"), transcription)
        self.assertAlmostEqual(short, 0.8)
        self.assertAlmostEqual(rich, 1.0)


if __name__ == "__main__":
    unittest.main()
