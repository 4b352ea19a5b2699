"""Capture session that owns the recording lifecycle."""

import asyncio
import logging
import threading
from typing import Any, Callable, Dict, Optional

from ..audio.base import AudioSource
from ..audio.bridge import DEFAULT_BRIDGE_CAPACITY, BridgeSender, StreamingBridge
from ..audio.fallback import AudioSourceSelection, select_audio_source
from ..cancellation import CancellationHandle
from ..errors import AlreadyRecording, CaptureError, NotRecording
from ..models.config import CaptureConfig
from ..models.events import CAPTURE_ERROR, CAPTURE_STARTED, CAPTURE_STOPPED, CAPTURE_WARNING
from ..transcription.link import TranscriptionLink
from .event_publisher import CaptureEventPublisher

logger = logging.getLogger(__name__)

CAPTURE_THREAD_JOIN_TIMEOUT = 2.0

SourceFactory = Callable[[CaptureEventPublisher], AudioSourceSelection]
LinkFactory = Callable[[CaptureConfig, Any, CaptureEventPublisher], Any]


class RecordingState:
    """Idle/Recording flag with atomic claim and release.

    Reads are lock-free; only the two transitions take the lock.
    """

    def __init__(self):
        self._recording = False
        self._lock = threading.Lock()

    @property
    def is_recording(self) -> bool:
        return self._recording

    def claim(self) -> bool:
        """Idle -> Recording. Returns False if already recording."""
        with self._lock:
            if self._recording:
                return False
            self._recording = True
            return True

    def release(self) -> bool:
        """Force Idle. Returns whether the state was Recording."""
        with self._lock:
            was_recording = self._recording
            self._recording = False
            return was_recording


class _ActiveRun:
    """Resources of one started session."""

    def __init__(self, session_id: Any, cancel: CancellationHandle):
        self.session_id = session_id
        self.cancel = cancel
        self.capturing = threading.Event()
        self.capturing.set()
        self.capture_thread: Optional[threading.Thread] = None
        self.link_task: Optional[asyncio.Task] = None

    def should_continue(self) -> bool:
        return self.capturing.is_set()


def default_link_factory(config: CaptureConfig, session_id: Any,
                         publisher: CaptureEventPublisher) -> TranscriptionLink:
    return TranscriptionLink(config, session_id, publisher)


class CaptureSession:
    """Runs at most one capture-to-transcript session at a time.

    ``start`` claims the session, spawns the capture thread and the link task
    and returns without waiting for either. The session ends when ``stop`` is
    called or when the link finishes on its own (fatal error, end of audio).
    """

    def __init__(self,
                 publisher: Optional[CaptureEventPublisher] = None,
                 source_factory: Optional[SourceFactory] = None,
                 link_factory: Optional[LinkFactory] = None,
                 bridge_capacity: int = DEFAULT_BRIDGE_CAPACITY):
        """Initialize capture session.

        Args:
            publisher: Event sink; a default-topic publisher if omitted
            source_factory: Chooses the AudioSource per start
            link_factory: Builds the transcription link per start
            bridge_capacity: Frames buffered between capture and network
        """
        self.publisher = publisher or CaptureEventPublisher()
        self.source_factory = source_factory or (lambda pub: select_audio_source(pub))
        self.link_factory = link_factory or default_link_factory
        self.bridge_capacity = bridge_capacity

        self._state = RecordingState()
        self._cancel_lock = threading.Lock()
        self._cancel: Optional[CancellationHandle] = None
        self._current: Optional[_ActiveRun] = None

    @property
    def is_recording(self) -> bool:
        return self._state.is_recording

    @property
    def session_id(self) -> Optional[Any]:
        current = self._current
        return current.session_id if current else None

    def status(self) -> Dict[str, bool]:
        return {"isRecording": self._state.is_recording}

    async def start(self, session_id: Any, config: CaptureConfig) -> str:
        """Start capturing for ``session_id``.

        Raises:
            AlreadyRecording: a session is already active; nothing changes
        """
        if not self._state.claim():
            raise AlreadyRecording()

        try:
            loop = asyncio.get_running_loop()
            cancel = CancellationHandle(loop)
            run = _ActiveRun(session_id, cancel)
            with self._cancel_lock:
                self._cancel = cancel
                self._current = run

            selection = self.source_factory(self.publisher)
            if selection.warning is not None:
                logger.warning(f"System audio unavailable: {selection.warning}")
                self.publisher.emit(CAPTURE_WARNING, {
                    "message": f"{selection.warning}. Using microphone only.",
                    "code": selection.warning.code,
                })

            bridge = StreamingBridge(self.bridge_capacity, loop=loop)
            session_sender = bridge.sender()
            run.capture_thread = threading.Thread(
                target=self._run_source,
                args=(run, selection.source, session_sender.clone()),
                daemon=True,
            )
            run.capture_thread.name = "AudioCaptureThread"
            run.capture_thread.start()
            # Only the capture thread holds a sender now; its exit ends the stream
            session_sender.close()

            link = self.link_factory(config, session_id, self.publisher)
            run.link_task = loop.create_task(self._run_link(run, link, bridge))
        except Exception:
            self._abandon(None)
            raise

        system_audio = selection.source.captures_system_audio
        self.publisher.emit(CAPTURE_STARTED, {
            "interviewId": session_id,
            "mic": True,
            "systemAudio": system_audio,
        })
        logger.info(f"Started capture for session: {session_id} "
                    f"({'mic + system audio' if system_audio else 'mic only'})")
        return "Capture started (mic + system audio)" if system_audio else "Capture started (mic only)"

    async def stop(self) -> str:
        """Stop the active session.

        Raises:
            NotRecording: no session is active; nothing changes
        """
        if not self._state.is_recording:
            raise NotRecording()

        with self._cancel_lock:
            cancel, self._cancel = self._cancel, None
            run = self._current
        if cancel is not None:
            cancel.signal()
        if run is not None:
            run.capturing.clear()
        self._state.release()
        logger.info(f"Stop requested for session: {run.session_id if run else None}")
        return "Capture stopped"

    async def wait_finished(self, timeout: Optional[float] = None) -> None:
        """Wait until the most recent session's link task has completed."""
        run = self._current
        if run is None or run.link_task is None:
            return
        await asyncio.wait_for(asyncio.shield(run.link_task), timeout=timeout)

    def _run_source(self, run: _ActiveRun, source: AudioSource, sender: BridgeSender) -> None:
        """Capture thread body. Closing the sender ends the audio stream."""
        logger.debug(f"Capture thread starting with {source!r}")
        try:
            source.run(sender.send, run.should_continue)
        except CaptureError as e:
            logger.error(f"Capture failed: {e}")
            self.publisher.emit(CAPTURE_ERROR, {"error": f"Mic: {e}", "code": e.code})
        except Exception as e:
            logger.error(f"Unhandled exception in capture thread: {e}", exc_info=True)
            self.publisher.emit(CAPTURE_ERROR, {"error": f"Capture: {e}"})
        finally:
            sender.close()
            logger.debug("Capture thread exiting")

    async def _run_link(self, run: _ActiveRun, link, bridge: StreamingBridge) -> None:
        try:
            await link.run(bridge, run.cancel)
        except CaptureError as e:
            logger.error(f"WebSocket error: {e}")
            self.publisher.emit(CAPTURE_ERROR, {"error": str(e), "code": e.code})
        except asyncio.CancelledError:
            logger.info("Link task cancelled")
            raise
        except Exception as e:
            logger.error(f"Unhandled exception in transcription link: {e}", exc_info=True)
            self.publisher.emit(CAPTURE_ERROR, {"error": str(e)})
        finally:
            self._abandon(run)
            await self._join_capture_thread(run)
            self.publisher.emit(CAPTURE_STOPPED, {})
            logger.info(f"Capture stopped for session: {run.session_id}")

    async def _join_capture_thread(self, run: _ActiveRun,
                                   timeout: float = CAPTURE_THREAD_JOIN_TIMEOUT) -> None:
        """Wait for the capture thread to release its device, off the event loop."""
        thread = run.capture_thread
        if thread is None or not thread.is_alive():
            return
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, thread.join, timeout)
        if thread.is_alive():
            logger.warning("Capture thread did not stop cleanly")

    def _abandon(self, run: Optional[_ActiveRun]) -> None:
        """Tear down ``run`` and release the claim if it is still current."""
        with self._cancel_lock:
            current = self._current
            if run is None:
                run = current
            if run is not None:
                run.capturing.clear()
            if current is run:
                if self._cancel is (run.cancel if run else None):
                    self._cancel = None
                self._state.release()
