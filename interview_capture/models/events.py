"""Event models published on the capture event topic."""

import time
from dataclasses import dataclass, field
from typing import Any, Dict

CAPTURE_STARTED = "capture-started"
CAPTURE_WARNING = "capture-warning"
CAPTURE_ERROR = "capture-error"
CAPTURE_STOPPED = "capture-stopped"
TRANSCRIPT = "transcript"
PROVIDER_SWITCH = "provider-switch"
MIC_STARTED = "mic-started"
SYSTEM_AUDIO_STARTED = "system-audio-started"


@dataclass
class CaptureEvent:
    """A lifecycle, warning or transcript event."""
    name: str
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)  # Unix time of emission
