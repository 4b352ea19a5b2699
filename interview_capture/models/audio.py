"""Audio-related data models."""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class InputDeviceInfo:
    """An input-capable audio device and its default input configuration."""
    name: str
    sample_rate: Optional[int]
    channels: Optional[int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "sampleRate": self.sample_rate,
            "channels": self.channels,
        }
