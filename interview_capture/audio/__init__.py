"""Audio capture, normalization and bridging module."""

from .base import AudioSource
from .bridge import StreamingBridge, BridgeSender, BridgeStats
from .capture import MicrophoneSource, list_input_devices
from .fallback import FallbackCaptureSource, AudioSourceSelection, select_audio_source
from .resample import resample, TARGET_SAMPLE_RATE, TARGET_CHANNELS
from .system_audio import SystemAudioSource

__all__ = [
    'AudioSource',
    'StreamingBridge',
    'BridgeSender',
    'BridgeStats',
    'MicrophoneSource',
    'SystemAudioSource',
    'FallbackCaptureSource',
    'AudioSourceSelection',
    'select_audio_source',
    'list_input_devices',
    'resample',
    'TARGET_SAMPLE_RATE',
    'TARGET_CHANNELS',
]
