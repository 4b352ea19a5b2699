"""Data models for the interview capture pipeline."""

from .audio import InputDeviceInfo
from .config import CaptureConfig, DEFAULT_SERVICE_URL
from .events import (
    CaptureEvent,
    CAPTURE_STARTED,
    CAPTURE_WARNING,
    CAPTURE_ERROR,
    CAPTURE_STOPPED,
    TRANSCRIPT,
    PROVIDER_SWITCH,
    MIC_STARTED,
    SYSTEM_AUDIO_STARTED,
)
from .transcription import TranscriptChunk

__all__ = [
    "InputDeviceInfo",
    "CaptureConfig",
    "DEFAULT_SERVICE_URL",
    "CaptureEvent",
    "TranscriptChunk",
    # Event names
    "CAPTURE_STARTED",
    "CAPTURE_WARNING",
    "CAPTURE_ERROR",
    "CAPTURE_STOPPED",
    "TRANSCRIPT",
    "PROVIDER_SWITCH",
    "MIC_STARTED",
    "SYSTEM_AUDIO_STARTED",
]
