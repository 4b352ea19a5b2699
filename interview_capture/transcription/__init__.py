"""Transcription link module for interview_capture."""

from .analysis_client import AnalysisClient
from .link import TranscriptionLink, build_stream_url, CONNECT_TIMEOUT_SECONDS
from .messages import build_transcript_chunk, decode_message

__all__ = [
    "AnalysisClient",
    "TranscriptionLink",
    "build_stream_url",
    "build_transcript_chunk",
    "decode_message",
    "CONNECT_TIMEOUT_SECONDS",
]
