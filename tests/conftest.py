"""Pytest configuration and fixtures for interview_capture tests."""

import asyncio
import pytest
import threading
import time
import logging
from typing import List
from unittest.mock import Mock, patch
import numpy as np
from pubsub import pub

from interview_capture.audio.base import AudioSource
from interview_capture.models.events import CaptureEvent
from interview_capture.services.event_publisher import CaptureEventPublisher


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_addoption(parser):
    parser.addoption("--run-hardware", action="store_true", default=False,
                     help="Run tests that need a real microphone")


def pytest_configure(config):
    for marker in ("unit", "integration", "hardware", "slow"):
        config.addinivalue_line("markers", f"{marker}: {marker} tests")


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-hardware"):
        return
    skip_hardware = pytest.mark.skip(reason="needs --run-hardware")
    for item in items:
        if "hardware" in item.keywords:
            item.add_marker(skip_hardware)


class EventRecorder:
    """Collects capture events published from any thread."""

    def __init__(self):
        self.events: List[CaptureEvent] = []
        self._lock = threading.Lock()

    def on_event(self, event):
        with self._lock:
            self.events.append(event)

    def names(self) -> List[str]:
        with self._lock:
            return [event.name for event in self.events]

    def of(self, name: str) -> List[CaptureEvent]:
        with self._lock:
            return [event for event in self.events if event.name == name]

    def count(self, name: str) -> int:
        return len(self.of(name))

    async def wait_for(self, name: str, count: int = 1, timeout: float = 5.0) -> bool:
        """Yield to the loop until ``count`` events named ``name`` arrived."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if self.count(name) >= count:
                return True
            await asyncio.sleep(0.01)
        return self.count(name) >= count


class ScriptedSource(AudioSource):
    """Test source that pushes fixed frames, then idles or returns."""

    label = "Scripted"

    def __init__(self, frames=(), keep_running: bool = False, interval: float = 0.005):
        self.frames = list(frames)
        self.keep_running = keep_running
        self.interval = interval
        self.stopped = threading.Event()
        self.accepted = []

    def run(self, sink, should_continue):
        try:
            for frame in self.frames:
                if not should_continue():
                    return
                self.accepted.append(sink(frame))
            while self.keep_running and should_continue():
                time.sleep(self.interval)
        finally:
            self.stopped.set()


class FailingSource(AudioSource):
    """Test source that fails before producing anything."""

    label = "Failing"

    def __init__(self, error: Exception, system_audio: bool = False):
        self.error = error
        self.calls = 0
        self._system_audio = system_audio

    @property
    def captures_system_audio(self) -> bool:
        return self._system_audio

    def run(self, sink, should_continue):
        self.calls += 1
        raise self.error


@pytest.fixture
def publisher():
    """Publisher on a test-only topic; all listeners removed afterwards."""
    publisher = CaptureEventPublisher("capture_test")
    yield publisher
    pub.unsubAll()


@pytest.fixture
def event_recorder(publisher):
    recorder = EventRecorder()
    publisher.subscribe(recorder.on_event)
    return recorder


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        # Configure mock stream
        mock_stream.start_stream.return_value = None
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        devices = [
            {"index": 0, "name": "Test Mic", "maxInputChannels": 2, "defaultSampleRate": 48000.0},
            {"index": 1, "name": "Test Speakers", "maxInputChannels": 0, "defaultSampleRate": 44100.0},
            {"index": 2, "name": "USB Headset", "maxInputChannels": 1, "defaultSampleRate": 16000.0},
        ]

        # Configure mock PyAudio instance
        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None
        mock_pyaudio_instance.get_default_input_device_info.return_value = dict(devices[0])
        mock_pyaudio_instance.is_format_supported.return_value = True
        mock_pyaudio_instance.get_device_count.return_value = len(devices)
        mock_pyaudio_instance.get_device_info_by_index.side_effect = lambda i: dict(devices[i])

        # Configure mock PyAudio class
        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream,
            'devices': devices,
        }


@pytest.fixture
def audio_test_data():
    """Generate various audio test data patterns."""
    def generate_audio(pattern="sine", duration_seconds=1.0, sample_rate=16000):
        """Generate int16 audio samples for testing.

        Args:
            pattern: Type of audio pattern ('sine', 'noise', 'silence')
            duration_seconds: Duration of audio
            sample_rate: Sample rate in Hz

        Returns:
            np.ndarray: int16 samples
        """
        samples = int(duration_seconds * sample_rate)

        if pattern == "sine":
            t = np.linspace(0, duration_seconds, samples, False)
            wave_data = np.sin(2 * np.pi * 440 * t)
        elif pattern == "noise":
            wave_data = np.random.uniform(-1, 1, samples)
        elif pattern == "silence":
            wave_data = np.zeros(samples)
        else:
            raise ValueError(f"Unknown pattern: {pattern}")

        return (wave_data * 32767).astype(np.int16)

    return generate_audio
