"""Combined system audio + microphone capture via soundcard loopback devices."""

import logging
from contextlib import ExitStack
from typing import Any, Optional

import numpy as np

from .base import AudioSource, AudioSink, ShouldContinue
from .resample import float_to_pcm16, resample, to_pcm16_bytes
from ..errors import CaptureError, CaptureUnavailable
from ..models.events import SYSTEM_AUDIO_STARTED

logger = logging.getLogger(__name__)

SYSTEM_SAMPLE_RATE = 48000
SYSTEM_CHANNELS = 1  # mono is enough for STT
BLOCK_SECONDS = 0.05

LOOPBACK_HINTS = ("loopback", "monitor", "stereo mix", "what u hear")


def _load_soundcard():
    """Import soundcard, reporting a missing audio server as unsupported."""
    try:
        import soundcard
    except (ImportError, OSError, RuntimeError, AssertionError) as e:
        raise CaptureUnavailable(
            f"System audio capture not available on this platform: {e}",
            code="SYSTEM_AUDIO_UNSUPPORTED") from e
    return soundcard


def mix_blocks(system: np.ndarray, voice: Optional[np.ndarray]) -> np.ndarray:
    """Sum two float32 blocks sample by sample, clipped to [-1, 1]."""
    if voice is None:
        return system
    length = min(len(system), len(voice))
    return np.clip(system[:length] + voice[:length], -1.0, 1.0)


class SystemAudioSource(AudioSource):
    """Records the default speaker's loopback mixed with the default microphone.

    The loopback stream includes everything the machine plays, this process
    included: audio the host application plays back reaches the STT stream
    too, and ``system-audio-started`` reports it as ``includesOwnPlayback``.
    Float32 blocks are mixed, converted to PCM16 and resampled to
    16 kHz mono before reaching the sink.
    """

    name = "system_audio"
    label = "System audio"

    def __init__(self,
                 publisher=None,
                 sample_rate: int = SYSTEM_SAMPLE_RATE,
                 channels: int = SYSTEM_CHANNELS,
                 include_microphone: bool = True,
                 block_seconds: float = BLOCK_SECONDS):
        self.publisher = publisher
        self.sample_rate = sample_rate
        self.channels = channels
        self.include_microphone = include_microphone
        self.block_frames = max(1, int(sample_rate * block_seconds))
        self.total_blocks = 0

    @property
    def captures_system_audio(self) -> bool:
        return True

    @classmethod
    def probe(cls) -> Optional[CaptureUnavailable]:
        """Check whether this platform can capture system audio at all.

        Returns:
            None when a loopback device exists, else the reason it does not
        """
        try:
            soundcard = _load_soundcard()
            cls._find_loopback(soundcard)
        except CaptureUnavailable as e:
            logger.info(f"System audio probe failed: {e}")
            return e
        return None

    def run(self, sink: AudioSink, should_continue: ShouldContinue) -> None:
        soundcard = _load_soundcard()
        loopback = self._find_loopback(soundcard)
        microphone = self._find_microphone(soundcard) if self.include_microphone else None
        logger.info(f"System audio: loopback '{loopback.name}'"
                    + (f" + mic '{microphone.name}'" if microphone is not None else " (no mic)"))

        try:
            with ExitStack() as stack:
                system = stack.enter_context(loopback.recorder(
                    samplerate=self.sample_rate, channels=self.channels,
                    blocksize=self.block_frames))
                voice = None
                if microphone is not None:
                    voice = stack.enter_context(microphone.recorder(
                        samplerate=self.sample_rate, channels=self.channels,
                        blocksize=self.block_frames))

                if self.publisher:
                    self.publisher.emit(SYSTEM_AUDIO_STARTED, {
                        "sampleRate": self.sample_rate,
                        "channels": self.channels,
                        "includesOwnPlayback": True,
                    })
                logger.info(f"System audio capture started ({self.sample_rate}Hz {self.channels}ch)")

                while should_continue():
                    block = system.record(numframes=self.block_frames)
                    voice_block = voice.record(numframes=self.block_frames) if voice is not None else None
                    mixed = mix_blocks(np.asarray(block, dtype=np.float32),
                                       None if voice_block is None
                                       else np.asarray(voice_block, dtype=np.float32))
                    # Interleaved float32 -> PCM16 -> 16 kHz mono
                    samples = float_to_pcm16(mixed.reshape(-1))
                    resampled = resample(samples, self.sample_rate, self.channels)
                    self.total_blocks += 1
                    if resampled.size:
                        sink(to_pcm16_bytes(resampled))
        except CaptureError:
            raise
        except PermissionError as e:
            raise CaptureUnavailable(f"System audio permission denied: {e}",
                                     code="PERMISSION_DENIED") from e
        except (RuntimeError, OSError, TypeError, ValueError) as e:
            raise CaptureUnavailable(f"System audio capture failed: {e}",
                                     code="PLATFORM_API_FAILURE") from e

        logger.info(f"System audio capture stopped after {self.total_blocks} blocks")

    @staticmethod
    def _find_loopback(soundcard) -> Any:
        try:
            speaker = soundcard.default_speaker()
            candidates = soundcard.all_microphones(include_loopback=True)
        except PermissionError as e:
            raise CaptureUnavailable(f"System audio permission denied: {e}",
                                     code="PERMISSION_DENIED") from e
        except (RuntimeError, OSError, IndexError) as e:
            raise CaptureUnavailable(f"System audio devices unavailable: {e}",
                                     code="PLATFORM_API_FAILURE") from e

        loopbacks = [m for m in candidates if getattr(m, "isloopback", False)]
        speaker_name = getattr(speaker, "name", None) or ""
        # Best match is the loopback of the default speaker
        for device in loopbacks:
            if speaker_name and speaker_name in (device.name or ""):
                return device
        for device in loopbacks:
            if any(hint in (device.name or "").lower() for hint in LOOPBACK_HINTS):
                return device
        if loopbacks:
            return loopbacks[0]
        raise CaptureUnavailable("No capturable system audio output found",
                                 code="NO_CAPTURE_SURFACE")

    @staticmethod
    def _find_microphone(soundcard) -> Optional[Any]:
        try:
            return soundcard.default_microphone()
        except (RuntimeError, OSError, IndexError) as e:
            logger.warning(f"No microphone to mix with system audio: {e}")
            return None
