"""Decoding of inbound STT proxy messages."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..models.transcription import TranscriptChunk

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.9

MESSAGE_TRANSCRIPT = "transcript"
MESSAGE_PROVIDER_SWITCH = "provider_switch"
MESSAGE_ERROR = "error"
MESSAGE_CONNECTED = "connected"


def decode_message(text: str) -> Optional[Dict[str, Any]]:
    """Parse a text frame as a JSON object. Anything else yields None."""
    try:
        data = json.loads(text)
    except (TypeError, ValueError):
        logger.debug(f"Ignoring malformed message: {text[:80]!r}")
        return None
    if not isinstance(data, dict):
        return None
    return data


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def speaker_index(data: Dict[str, Any]) -> int:
    """Speaker of the first word, 0 when absent."""
    words = data.get("words")
    if isinstance(words, list) and words and isinstance(words[0], dict):
        speaker = words[0].get("speaker")
        if isinstance(speaker, int) and not isinstance(speaker, bool):
            return speaker
    return 0


def build_transcript_chunk(data: Dict[str, Any],
                           now: Optional[datetime] = None) -> Optional[TranscriptChunk]:
    """Turn a final transcript message into a chunk.

    Returns:
        None for interim results and for empty or missing text
    """
    if data.get("type") != MESSAGE_TRANSCRIPT or data.get("is_final") is not True:
        return None
    text = data.get("text")
    if not isinstance(text, str) or not text:
        return None

    confidence = data.get("confidence")
    timestamp = (now or datetime.now(timezone.utc)).isoformat()
    return TranscriptChunk(
        speaker=f"speaker_{speaker_index(data)}",
        text=text,
        timestamp=timestamp,
        confidence=float(confidence) if _is_number(confidence) else DEFAULT_CONFIDENCE,
        provider=data.get("provider"),
    )
