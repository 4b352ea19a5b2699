"""Microphone capture via PyAudio and input device enumeration."""

import time
import logging
from typing import Any, Dict, List, Optional

import numpy as np
import pyaudio

from .base import AudioSource, AudioSink, ShouldContinue
from .resample import float_to_pcm16, pcm16_from_bytes, resample, to_pcm16_bytes
from ..errors import DeviceError, NoInputDevice, UnsupportedFormat
from ..models.audio import InputDeviceInfo
from ..models.events import MIC_STARTED

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 0.05
DEFAULT_FRAMES_PER_BUFFER = 1024
MAX_CAPTURE_CHANNELS = 2

# Negotiation order: native 16-bit first, then float
SUPPORTED_FORMATS = (
    (pyaudio.paInt16, "int16"),
    (pyaudio.paFloat32, "float32"),
)


def decode_buffer(data: bytes, sample_format: int) -> np.ndarray:
    """Decode a raw PyAudio buffer into int16 samples."""
    if sample_format == pyaudio.paInt16:
        return pcm16_from_bytes(data)
    if sample_format == pyaudio.paFloat32:
        usable = len(data) - (len(data) % 4)
        return float_to_pcm16(np.frombuffer(data[:usable], dtype="<f4"))
    raise UnsupportedFormat(f"Unsupported mic sample format: {sample_format}")


def list_input_devices() -> List[Dict[str, Any]]:
    """List input-capable devices as {name, sampleRate, channels} dicts."""
    pa = pyaudio.PyAudio()
    try:
        devices = []
        for index in range(pa.get_device_count()):
            info = pa.get_device_info_by_index(index)
            max_channels = int(info.get("maxInputChannels", 0) or 0)
            if max_channels <= 0:
                continue
            rate = info.get("defaultSampleRate")
            devices.append(InputDeviceInfo(
                name=str(info.get("name", f"device {index}")),
                sample_rate=int(rate) if rate else None,
                channels=max_channels,
            ).to_dict())
        logger.debug(f"Found {len(devices)} input devices")
        return devices
    finally:
        pa.terminate()


class MicrophoneSource(AudioSource):
    """Captures the default input device through a PyAudio callback stream."""

    name = "microphone"
    label = "Microphone"

    def __init__(self,
                 publisher=None,
                 frames_per_buffer: int = DEFAULT_FRAMES_PER_BUFFER,
                 poll_interval: float = POLL_INTERVAL_SECONDS):
        """Initialize microphone source.

        Args:
            publisher: CaptureEventPublisher for the mic-started event
            frames_per_buffer: PyAudio buffer size in frames
            poll_interval: Seconds between checks of should_continue
        """
        self.publisher = publisher
        self.frames_per_buffer = frames_per_buffer
        self.poll_interval = poll_interval
        self.total_buffers = 0

    def run(self, sink: AudioSink, should_continue: ShouldContinue) -> None:
        pa = pyaudio.PyAudio()
        stream: Optional[Any] = None
        try:
            device = self._default_input_device(pa)
            device_name = str(device.get("name", "default"))
            source_rate = int(device["defaultSampleRate"])
            channels = max(1, min(int(device["maxInputChannels"]), MAX_CAPTURE_CHANNELS))
            sample_format, format_name = self._negotiate_format(pa, device, source_rate, channels)
            logger.info(f"Mic device: {device_name}")
            logger.info(f"Mic config: {source_rate}Hz {channels}ch {format_name}")

            def on_audio(in_data, frame_count, time_info, status_flags):
                if in_data:
                    samples = decode_buffer(in_data, sample_format)
                    resampled = resample(samples, source_rate, channels)
                    self.total_buffers += 1
                    if resampled.size:
                        sink(to_pcm16_bytes(resampled))
                return (None, pyaudio.paContinue)

            try:
                stream = pa.open(
                    format=sample_format,
                    channels=channels,
                    rate=source_rate,
                    input=True,
                    input_device_index=device.get("index"),
                    frames_per_buffer=self.frames_per_buffer,
                    stream_callback=on_audio,
                )
                stream.start_stream()
            except (OSError, ValueError) as e:
                raise DeviceError(f"Failed to open mic stream on {device_name}: {e}") from e

            if self.publisher:
                self.publisher.emit(MIC_STARTED, {"device": device_name})

            while should_continue():
                time.sleep(self.poll_interval)
            logger.info(f"Mic capture stopped after {self.total_buffers} buffers")
        finally:
            if stream is not None:
                try:
                    stream.stop_stream()
                    stream.close()
                except OSError as e:
                    logger.warning(f"Error closing mic stream: {e}")
            pa.terminate()

    def _default_input_device(self, pa: pyaudio.PyAudio) -> Dict[str, Any]:
        try:
            device = pa.get_default_input_device_info()
        except IOError as e:
            raise NoInputDevice(f"No input device found: {e}") from e
        if not device or int(device.get("maxInputChannels", 0) or 0) <= 0:
            raise NoInputDevice()
        return device

    def _negotiate_format(self, pa: pyaudio.PyAudio, device: Dict[str, Any],
                          rate: int, channels: int):
        for sample_format, format_name in SUPPORTED_FORMATS:
            try:
                if pa.is_format_supported(rate,
                                          input_device=device.get("index"),
                                          input_channels=channels,
                                          input_format=sample_format):
                    return sample_format, format_name
            except ValueError as e:
                logger.debug(f"Mic does not support {format_name}: {e}")
        raise UnsupportedFormat(
            f"Unsupported mic sample format: device '{device.get('name')}' "
            f"supports neither int16 nor float32 at {rate}Hz {channels}ch")
