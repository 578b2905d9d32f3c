"""OpenAI-backed remote clients."""

from .generation import ContentGenerationClient
from .transcription import TranscriptionClient

__all__ = ["ContentGenerationClient", "TranscriptionClient"]
