"""Integration tests for the STT link against a local aiohttp server."""

import asyncio
import json
import pytest
from aiohttp import WSMsgType, test_utils, web

from conftest import ScriptedSource
from interview_capture.audio.bridge import StreamingBridge
from interview_capture.audio.fallback import AudioSourceSelection
from interview_capture.cancellation import CancellationHandle
from interview_capture.errors import ConnectionTimeout, LinkConnectionError
from interview_capture.models.config import CaptureConfig
from interview_capture.models.events import (
    CAPTURE_ERROR,
    CAPTURE_STOPPED,
    PROVIDER_SWITCH,
    TRANSCRIPT,
)
from interview_capture.services.capture_session import CaptureSession
from interview_capture.transcription.link import TranscriptionLink, build_stream_url


FINAL_TRANSCRIPT = json.dumps({
    "type": "transcript",
    "is_final": True,
    "text": "hello there",
    "confidence": 0.97,
    "words": [{"speaker": 1}],
    "provider": "deepgram",
})


class FakeSttProxy:
    """Local stand-in for the STT proxy and the analyze-chunk endpoint."""

    def __init__(self, replies=(), reject_status=None, close_after_first=False):
        self.replies = list(replies)
        self.reject_status = reject_status
        self.close_after_first = close_after_first
        self.query = None
        self.authorization = None
        self.frames = []
        self.analyze_calls = []
        self.chunk_posted = asyncio.Event()
        self.closed = asyncio.Event()

        self.app = web.Application()
        self.app.router.add_get('/ws', self.stream)
        self.app.router.add_post('/functions/v1/analyze-chunk', self.analyze)

    async def stream(self, request):
        self.query = dict(request.query)
        self.authorization = request.headers.get("Authorization")
        if self.reject_status:
            return web.Response(status=self.reject_status, text="forbidden")

        ws = web.WebSocketResponse()
        await ws.prepare(request)
        await ws.send_str(json.dumps({"type": "connected", "provider": "deepgram"}))
        async for message in ws:
            if message.type == WSMsgType.BINARY:
                self.frames.append(message.data)
                if len(self.frames) == 1:
                    for reply in self.replies:
                        await ws.send_str(reply)
                    if self.close_after_first:
                        await ws.close()
                        break
        self.closed.set()
        return ws

    async def analyze(self, request):
        headers = {name: request.headers.get(name) for name in ("Authorization", "x-internal-key")}
        self.analyze_calls.append((headers, await request.json()))
        self.chunk_posted.set()
        return web.json_response({"ok": True})


async def start_server(proxy):
    server = test_utils.TestServer(proxy.app)
    await server.start_server()
    return server, f"http://{server.host}:{server.port}"


async def start_silent_server():
    """TCP server that accepts connections and never answers the handshake."""
    async def silent(reader, writer):
        await reader.read()
        writer.close()

    server = await asyncio.start_server(silent, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    return server, f"http://127.0.0.1:{port}"


@pytest.mark.unit
def test_stream_url_carries_parameters():
    config = CaptureConfig(service_url="https://proxy.example.com/", language="es", model="nova-2")

    assert build_stream_url(config) == (
        "wss://proxy.example.com/ws?provider=deepgram&language=es&model=nova-2"
        "&channels=1&sample_rate=16000&encoding=linear16"
    )


@pytest.mark.integration
class TestTranscriptionLink:
    """Test cases for TranscriptionLink."""

    def test_streams_frames_and_forwards_transcripts(self, publisher, event_recorder):
        frames = [b"\x01\x00\x02\x00", b"\x03\x00\x04\x00"]

        async def scenario():
            proxy = FakeSttProxy(replies=[FINAL_TRANSCRIPT])
            server, base_url = await start_server(proxy)
            try:
                config = CaptureConfig(
                    auth_token="tok",
                    service_url=base_url,
                    language="es",
                    collaborator_url=base_url,
                    collaborator_anon_key="anon",
                    internal_api_key="internal",
                )
                bridge = StreamingBridge(capacity=10)
                sender = bridge.sender()
                link = TranscriptionLink(config, 42, publisher)
                task = asyncio.ensure_future(link.run(bridge, CancellationHandle()))
                for frame in frames:
                    sender.send(frame)
                await asyncio.wait_for(proxy.chunk_posted.wait(), timeout=5.0)
                sender.close()
                await asyncio.wait_for(task, timeout=5.0)
                return proxy, link
            finally:
                await server.close()

        proxy, link = asyncio.run(scenario())

        assert proxy.query == {
            "provider": "deepgram", "language": "es", "model": "nova-3",
            "channels": "1", "sample_rate": "16000", "encoding": "linear16",
        }
        assert proxy.authorization == "Bearer tok"
        assert proxy.frames == frames
        assert link.frames_sent == 2

        transcript = event_recorder.of(TRANSCRIPT)[0].payload
        assert transcript["speaker"] == "speaker_1"
        assert transcript["text"] == "hello there"
        assert transcript["confidence"] == 0.97
        assert transcript["provider"] == "deepgram"

        assert len(proxy.analyze_calls) == 1
        headers, body = proxy.analyze_calls[0]
        assert headers["Authorization"] == "Bearer anon"
        assert headers["x-internal-key"] == "internal"
        assert body == {"interviewId": 42, "chunk": transcript}

    def test_non_transcript_messages(self, publisher, event_recorder):
        interim = json.dumps({"type": "transcript", "is_final": False, "text": "hel"})
        switch = {"type": "provider_switch", "from": "deepgram", "to": "assemblyai"}
        error = {"type": "error", "message": "quota exceeded"}

        async def scenario():
            proxy = FakeSttProxy(replies=[interim, "not json", json.dumps(switch), json.dumps(error)])
            server, base_url = await start_server(proxy)
            try:
                bridge = StreamingBridge()
                sender = bridge.sender()
                cancel = CancellationHandle()
                link = TranscriptionLink(CaptureConfig(service_url=base_url, collaborator_url=base_url),
                                         1, publisher)
                task = asyncio.ensure_future(link.run(bridge, cancel))
                sender.send(b"\x00\x00")
                assert await event_recorder.wait_for(CAPTURE_ERROR, timeout=5.0)
                cancel.signal()
                await asyncio.wait_for(task, timeout=5.0)
                sender.close()
                return proxy
            finally:
                await server.close()

        proxy = asyncio.run(scenario())

        assert event_recorder.count(TRANSCRIPT) == 0
        assert proxy.analyze_calls == []
        assert event_recorder.of(PROVIDER_SWITCH)[0].payload == switch
        assert event_recorder.of(CAPTURE_ERROR)[0].payload == error

    def test_stop_signal_closes_connection(self, publisher):
        async def scenario():
            proxy = FakeSttProxy()
            server, base_url = await start_server(proxy)
            try:
                bridge = StreamingBridge()
                sender = bridge.sender()
                cancel = CancellationHandle()
                link = TranscriptionLink(CaptureConfig(service_url=base_url), 1, publisher)
                task = asyncio.ensure_future(link.run(bridge, cancel))
                sender.send(b"\x05\x00")
                await asyncio.sleep(0.2)
                cancel.signal()
                await asyncio.wait_for(task, timeout=5.0)
                await asyncio.wait_for(proxy.closed.wait(), timeout=5.0)
                sender.close()
                return proxy, link
            finally:
                await server.close()

        proxy, link = asyncio.run(scenario())

        assert proxy.frames == [b"\x05\x00"]
        assert link.frames_sent == 1

    def test_peer_close_ends_sender(self, publisher):
        async def scenario():
            proxy = FakeSttProxy(close_after_first=True)
            server, base_url = await start_server(proxy)
            try:
                bridge = StreamingBridge()
                sender = bridge.sender()
                link = TranscriptionLink(CaptureConfig(service_url=base_url), 1, publisher)
                task = asyncio.ensure_future(link.run(bridge, CancellationHandle()))
                sender.send(b"\x01\x00")
                await asyncio.wait_for(proxy.closed.wait(), timeout=5.0)
                await asyncio.sleep(0.1)
                sender.send(b"\x02\x00")
                await asyncio.wait_for(task, timeout=5.0)
                sender.close()
                return link
            finally:
                await server.close()

        link = asyncio.run(scenario())

        assert link.frames_sent == 1

    def test_connection_timeout(self, publisher):
        async def scenario():
            server, base_url = await start_silent_server()
            try:
                bridge = StreamingBridge()
                sender = bridge.sender()
                link = TranscriptionLink(CaptureConfig(service_url=base_url), 1, publisher,
                                         connect_timeout=0.2)
                with pytest.raises(ConnectionTimeout) as excinfo:
                    await link.run(bridge, CancellationHandle())
                sender.close()
                return excinfo.value
            finally:
                server.close()
                await server.wait_closed()

        error = asyncio.run(scenario())

        assert str(error) == "WebSocket connection timeout (0.2s) - STT proxy unreachable"
        assert error.code == "CONNECTION_TIMEOUT"

    def test_stop_during_handshake_ends_quietly(self, publisher):
        async def scenario():
            server, base_url = await start_silent_server()
            try:
                bridge = StreamingBridge()
                sender = bridge.sender()
                cancel = CancellationHandle()
                link = TranscriptionLink(CaptureConfig(service_url=base_url), 1, publisher,
                                         connect_timeout=5.0)
                task = asyncio.ensure_future(link.run(bridge, cancel))
                await asyncio.sleep(0.1)
                cancel.signal()
                result = await asyncio.wait_for(task, timeout=1.0)
                sender.close()
                return result, link
            finally:
                server.close()
                await server.wait_closed()

        result, link = asyncio.run(scenario())

        assert result is None
        assert link.frames_sent == 0

    def test_rejected_handshake(self, publisher):
        async def scenario():
            proxy = FakeSttProxy(reject_status=403)
            server, base_url = await start_server(proxy)
            try:
                bridge = StreamingBridge()
                sender = bridge.sender()
                link = TranscriptionLink(CaptureConfig(auth_token="bad", service_url=base_url), 1, publisher)
                with pytest.raises(LinkConnectionError) as excinfo:
                    await link.run(bridge, CancellationHandle())
                sender.close()
                return excinfo.value, proxy
            finally:
                await server.close()

        error, proxy = asyncio.run(scenario())

        assert error.code == "CONNECTION_FAILED"
        assert proxy.authorization == "Bearer bad"


@pytest.mark.integration
class TestSessionOverLink:
    """CaptureSession driving a real TranscriptionLink."""

    def test_unreachable_proxy_ends_session(self, publisher, event_recorder):
        async def scenario():
            server, base_url = await start_silent_server()
            try:
                session = CaptureSession(
                    publisher=publisher,
                    source_factory=lambda pub: AudioSourceSelection(ScriptedSource(keep_running=True)),
                    link_factory=lambda config, session_id, pub: TranscriptionLink(
                        config, session_id, pub, connect_timeout=0.2),
                )
                await session.start(5, CaptureConfig(service_url=base_url))
                await session.wait_finished(timeout=5.0)
                return session
            finally:
                server.close()
                await server.wait_closed()

        session = asyncio.run(scenario())

        names = event_recorder.names()
        assert names.index(CAPTURE_ERROR) < names.index(CAPTURE_STOPPED)
        assert event_recorder.of(CAPTURE_ERROR)[0].payload == {
            "error": "WebSocket connection timeout (0.2s) - STT proxy unreachable",
            "code": "CONNECTION_TIMEOUT",
        }
        assert session.is_recording is False

    def test_stop_while_connecting_reports_no_error(self, publisher, event_recorder):
        async def scenario():
            server, base_url = await start_silent_server()
            try:
                session = CaptureSession(
                    publisher=publisher,
                    source_factory=lambda pub: AudioSourceSelection(ScriptedSource(keep_running=True)),
                    link_factory=lambda config, session_id, pub: TranscriptionLink(
                        config, session_id, pub, connect_timeout=5.0),
                )
                await session.start(6, CaptureConfig(service_url=base_url))
                await asyncio.sleep(0.1)
                await session.stop()
                await session.wait_finished(timeout=2.0)
                return session
            finally:
                server.close()
                await server.wait_closed()

        session = asyncio.run(scenario())

        assert event_recorder.count(CAPTURE_ERROR) == 0
        assert event_recorder.count(CAPTURE_STOPPED) == 1
        assert session.is_recording is False

    def test_session_streams_to_proxy(self, publisher, event_recorder):
        frames = [b"\x11\x00" * 8, b"\x22\x00" * 8, b"\x33\x00" * 8]

        async def scenario():
            proxy = FakeSttProxy()
            server, base_url = await start_server(proxy)
            try:
                session = CaptureSession(
                    publisher=publisher,
                    source_factory=lambda pub: AudioSourceSelection(ScriptedSource(frames)),
                )
                await session.start(8, CaptureConfig(service_url=base_url))
                await session.wait_finished(timeout=5.0)
                return proxy, session
            finally:
                await server.close()

        proxy, session = asyncio.run(scenario())

        assert proxy.frames == frames
        assert session.is_recording is False
        assert event_recorder.names()[-1] == CAPTURE_STOPPED
