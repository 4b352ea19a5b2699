"""Abstract base class for audio capture sources."""

import logging
from abc import ABC, abstractmethod
from typing import Callable

logger = logging.getLogger(__name__)

# Receives one normalized frame (PCM16 LE mono at 16 kHz); returns False if refused
AudioSink = Callable[[bytes], bool]
# Polled by a running source; returning False asks it to release the device and return
ShouldContinue = Callable[[], bool]


class AudioSource(ABC):
    """A capture backend driven on a dedicated thread.

    ``run`` blocks until ``should_continue`` returns False, handing every
    captured buffer to ``sink`` after normalization. It must never block on
    the sink. Acquisition or runtime failures raise a CaptureError subclass.
    """

    name = "audio"
    label = "Audio source"

    @abstractmethod
    def run(self, sink: AudioSink, should_continue: ShouldContinue) -> None:
        pass

    @property
    def captures_system_audio(self) -> bool:
        return False

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"
