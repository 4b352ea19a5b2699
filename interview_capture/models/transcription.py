"""Transcription-related data models."""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class TranscriptChunk:
    """A final, non-empty transcript segment from the STT service."""
    speaker: str      # "speaker_<index>"
    text: str
    timestamp: str    # RFC 3339, UTC
    confidence: float
    provider: Optional[Any] = None  # Passed through from the inbound message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "speaker": self.speaker,
            "text": self.text,
            "timestamp": self.timestamp,
            "confidence": self.confidence,
            "provider": self.provider,
        }
