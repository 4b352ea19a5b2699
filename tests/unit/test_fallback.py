"""Unit tests for fallback capture and source selection."""

import pytest
from unittest.mock import patch

from conftest import FailingSource, ScriptedSource
from interview_capture.audio.capture import MicrophoneSource
from interview_capture.audio.fallback import FallbackCaptureSource, select_audio_source
from interview_capture.audio.system_audio import SystemAudioSource
from interview_capture.errors import CaptureUnavailable, NoInputDevice
from interview_capture.models.events import CAPTURE_WARNING


class NamedFailingSource(FailingSource):
    label = "System audio"


class NamedScriptedSource(ScriptedSource):
    label = "Microphone"


@pytest.mark.unit
class TestFallbackCaptureSource:
    """Test cases for FallbackCaptureSource."""

    def test_first_source_success_skips_fallback(self, publisher, event_recorder):
        first = ScriptedSource([b"\x01\x00"])
        second = FailingSource(NoInputDevice())
        source = FallbackCaptureSource([first, second], publisher=publisher)
        received = []

        source.run(received.append, lambda: True)

        assert received == [b"\x01\x00"]
        assert second.calls == 0
        assert source.active_source is first
        assert event_recorder.names() == []

    def test_failure_warns_then_uses_next_source(self, publisher, event_recorder):
        failing = NamedFailingSource(CaptureUnavailable("loopback missing", code="NO_CAPTURE_SURFACE"),
                                     system_audio=True)
        microphone = NamedScriptedSource([b"\x02\x00", b"\x03\x00"])
        source = FallbackCaptureSource([failing, microphone], publisher=publisher)
        received = []

        source.run(received.append, lambda: True)

        assert received == [b"\x02\x00", b"\x03\x00"]
        warnings = event_recorder.of(CAPTURE_WARNING)
        assert len(warnings) == 1
        assert warnings[0].payload == {
            "message": "System audio unavailable (loopback missing). Using microphone only.",
            "code": "NO_CAPTURE_SURFACE",
        }
        assert source.active_source is microphone

    def test_last_failure_propagates(self, publisher, event_recorder):
        first = FailingSource(CaptureUnavailable("denied", code="PERMISSION_DENIED"))
        last = FailingSource(NoInputDevice())
        source = FallbackCaptureSource([first, last], publisher=publisher)

        with pytest.raises(NoInputDevice):
            source.run(lambda frame: True, lambda: True)

        assert event_recorder.count(CAPTURE_WARNING) == 1

    def test_stop_before_fallback_attempt(self):
        first = FailingSource(CaptureUnavailable("gone"))
        last = ScriptedSource([b"\x04\x00"])
        calls = []

        def should_continue():
            calls.append(True)
            return len(calls) == 1

        FallbackCaptureSource([first, last]).run(lambda frame: True, should_continue)

        assert first.calls == 1
        assert last.stopped.is_set() is False

    def test_label_and_system_audio_flag(self):
        source = FallbackCaptureSource([NamedFailingSource(CaptureUnavailable("x"), system_audio=True),
                                        NamedScriptedSource()])

        assert source.label == "System audio -> Microphone"
        assert source.captures_system_audio is True

    def test_requires_a_source(self):
        with pytest.raises(ValueError):
            FallbackCaptureSource([])


@pytest.mark.unit
class TestSelectAudioSource:
    """Test cases for select_audio_source."""

    def test_microphone_only_when_system_audio_disabled(self):
        with patch.object(SystemAudioSource, "probe") as probe:
            selection = select_audio_source(prefer_system_audio=False)

        probe.assert_not_called()
        assert isinstance(selection.source, MicrophoneSource)
        assert selection.warning is None

    def test_unsupported_platform_falls_back_with_warning(self):
        unavailable = CaptureUnavailable("not supported", code="SYSTEM_AUDIO_UNSUPPORTED")
        with patch.object(SystemAudioSource, "probe", return_value=unavailable):
            selection = select_audio_source()

        assert isinstance(selection.source, MicrophoneSource)
        assert selection.warning is unavailable

    def test_system_audio_with_microphone_fallback(self):
        with patch.object(SystemAudioSource, "probe", return_value=None):
            selection = select_audio_source(frames_per_buffer=512, poll_interval=0.01)

        assert isinstance(selection.source, FallbackCaptureSource)
        assert selection.warning is None
        system, microphone = selection.source.sources
        assert isinstance(system, SystemAudioSource)
        assert isinstance(microphone, MicrophoneSource)
        assert microphone.frames_per_buffer == 512
        assert microphone.poll_interval == 0.01
        assert selection.source.captures_system_audio is True
