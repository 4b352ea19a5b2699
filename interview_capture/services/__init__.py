"""Services layer for capture session orchestration."""

from .capture_session import CaptureSession, RecordingState
from .event_publisher import CaptureEventPublisher, DEFAULT_EVENT_TOPIC

__all__ = [
    "CaptureSession",
    "RecordingState",
    "CaptureEventPublisher",
    "DEFAULT_EVENT_TOPIC",
]
