"""Ordered fallback across capture sources and platform-based source selection."""

import logging
from typing import List, NamedTuple, Optional, Sequence

from .base import AudioSource, AudioSink, ShouldContinue
from .capture import MicrophoneSource
from .system_audio import SystemAudioSource
from ..errors import CaptureError
from ..models.events import CAPTURE_WARNING

logger = logging.getLogger(__name__)


class FallbackCaptureSource(AudioSource):
    """Runs the first source that works, surfacing each failure as a warning.

    A failure of any source but the last emits ``capture-warning`` with the
    failure's reason code and moves on to the next source. A failure of the
    last source propagates to the caller.
    """

    name = "fallback"

    def __init__(self, sources: Sequence[AudioSource], publisher=None):
        if not sources:
            raise ValueError("FallbackCaptureSource needs at least one source")
        self.sources: List[AudioSource] = list(sources)
        self.publisher = publisher
        self.active_source: Optional[AudioSource] = None

    @property
    def label(self) -> str:
        return " -> ".join(source.label for source in self.sources)

    @property
    def captures_system_audio(self) -> bool:
        return self.sources[0].captures_system_audio

    def run(self, sink: AudioSink, should_continue: ShouldContinue) -> None:
        for position, source in enumerate(self.sources):
            if not should_continue():
                return
            self.active_source = source
            is_last = position == len(self.sources) - 1
            try:
                source.run(sink, should_continue)
                logger.info(f"{source.label} capture ended normally")
                return
            except CaptureError as e:
                if is_last:
                    raise
                following = self.sources[position + 1]
                logger.error(f"{source.label} failed: {e} - falling back to {following.label}")
                if self.publisher:
                    self.publisher.emit(CAPTURE_WARNING, {
                        "message": f"{source.label} unavailable ({e}). "
                                   f"Using {following.label.lower()} only.",
                        "code": e.code,
                    })

    def __repr__(self) -> str:
        return f"FallbackCaptureSource({self.sources!r})"


class AudioSourceSelection(NamedTuple):
    """The source a session should run, plus a warning to emit at start."""
    source: AudioSource
    warning: Optional[CaptureError] = None


def select_audio_source(publisher=None,
                        prefer_system_audio: bool = True,
                        frames_per_buffer: Optional[int] = None,
                        poll_interval: Optional[float] = None) -> AudioSourceSelection:
    """Pick the capture strategy for this machine.

    Uses combined system audio with microphone fallback when the platform can
    capture system audio, otherwise microphone only plus a warning.
    """
    mic_options = {}
    if frames_per_buffer is not None:
        mic_options["frames_per_buffer"] = frames_per_buffer
    if poll_interval is not None:
        mic_options["poll_interval"] = poll_interval
    microphone = MicrophoneSource(publisher=publisher, **mic_options)

    if not prefer_system_audio:
        logger.info("System audio disabled by configuration, using microphone only")
        return AudioSourceSelection(source=microphone)

    unavailable = SystemAudioSource.probe()
    if unavailable is not None:
        return AudioSourceSelection(source=microphone, warning=unavailable)

    source = FallbackCaptureSource(
        [SystemAudioSource(publisher=publisher), microphone],
        publisher=publisher,
    )
    logger.info(f"Capture strategy: {source.label}")
    return AudioSourceSelection(source=source)
