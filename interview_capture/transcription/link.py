"""Duplex WebSocket link to the STT proxy."""

import asyncio
import logging
from typing import Any, Optional
from urllib.parse import urlencode

import aiohttp

from .analysis_client import AnalysisClient
from .messages import (
    MESSAGE_CONNECTED,
    MESSAGE_ERROR,
    MESSAGE_PROVIDER_SWITCH,
    MESSAGE_TRANSCRIPT,
    build_transcript_chunk,
    decode_message,
)
from ..audio.bridge import StreamingBridge
from ..audio.resample import TARGET_CHANNELS, TARGET_SAMPLE_RATE
from ..cancellation import CancellationHandle
from ..errors import ConnectionTimeout, LinkConnectionError
from ..models.config import CaptureConfig
from ..models.events import CAPTURE_ERROR, PROVIDER_SWITCH, TRANSCRIPT

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_SECONDS = 10.0


def build_stream_url(config: CaptureConfig) -> str:
    """WebSocket URL for the proxy, carrying the stream parameters as query."""
    base = config.service_url.rstrip("/")
    base = base.replace("https://", "wss://").replace("http://", "ws://")
    query = urlencode({
        "provider": config.provider,
        "language": config.language,
        "model": config.model,
        "channels": TARGET_CHANNELS,
        "sample_rate": TARGET_SAMPLE_RATE,
        "encoding": "linear16",
    })
    return f"{base}/ws?{query}"


class TranscriptionLink:
    """Streams bridge frames to the STT proxy and relays transcripts back.

    One sender loop forwards frames until cancellation or end of stream; a
    reader task decodes inbound messages concurrently and is cancelled when
    the sender loop exits. Nothing is retried.
    """

    def __init__(self,
                 config: CaptureConfig,
                 interview_id: Any,
                 publisher,
                 connect_timeout: float = CONNECT_TIMEOUT_SECONDS):
        """Initialize transcription link.

        Args:
            config: Session configuration
            interview_id: Session identifier forwarded with each chunk
            publisher: CaptureEventPublisher for transcript and error events
            connect_timeout: Seconds allowed for the WebSocket handshake
        """
        self.config = config
        self.interview_id = interview_id
        self.publisher = publisher
        self.connect_timeout = connect_timeout
        self.url = build_stream_url(config)
        self.frames_sent = 0
        self.transcripts_received = 0

    async def run(self, bridge: StreamingBridge, cancel: CancellationHandle) -> None:
        """Connect, stream until stopped, then close.

        Raises:
            ConnectionTimeout: the handshake did not finish in time
            LinkConnectionError: the handshake failed
        """
        async with aiohttp.ClientSession() as http:
            ws = await self._connect(http, cancel)
            if ws is None:
                return
            logger.info(f"STT proxy connected (provider: {self.config.provider}, "
                        f"language: {self.config.language}, rate: {TARGET_SAMPLE_RATE}Hz)")
            analysis = AnalysisClient(
                http,
                self.config.collaborator_url,
                anon_key=self.config.collaborator_anon_key,
                internal_key=self.config.internal_api_key,
            )
            reader = asyncio.ensure_future(self._read_loop(ws, analysis))
            try:
                await self._send_loop(ws, bridge, cancel)
            finally:
                reader.cancel()
                await asyncio.gather(reader, return_exceptions=True)
                if not ws.closed:
                    await ws.close()
                stats = bridge.get_stats()
                logger.info(f"Link finished: {self.frames_sent} frames sent, "
                            f"{stats.dropped_frames} dropped, "
                            f"{self.transcripts_received} transcripts")

    async def _connect(self, http: aiohttp.ClientSession,
                       cancel: Optional[CancellationHandle] = None
                       ) -> Optional[aiohttp.ClientWebSocketResponse]:
        """Open the WebSocket, racing the handshake against a stop request.

        Returns:
            The socket, or None if a stop was requested before it opened
        """
        headers = {"Authorization": f"Bearer {self.config.auth_token}"}

        async def open_socket():
            return await http.ws_connect(self.url, headers=headers)

        handshake = asyncio.ensure_future(open_socket())
        stop_requested = asyncio.ensure_future(cancel.wait()) if cancel is not None else None
        waiters = {handshake} if stop_requested is None else {handshake, stop_requested}

        try:
            done, _ = await asyncio.wait(waiters, timeout=self.connect_timeout,
                                         return_when=asyncio.FIRST_COMPLETED)
        finally:
            if stop_requested is not None:
                stop_requested.cancel()
            if not handshake.done():
                handshake.cancel()

        if handshake not in done:
            await asyncio.gather(handshake, return_exceptions=True)
            if stop_requested is not None and stop_requested in done:
                logger.info("Stop requested while connecting to STT proxy")
                return None
            raise ConnectionTimeout(
                f"WebSocket connection timeout ({self.connect_timeout:g}s) - "
                f"STT proxy unreachable")
        try:
            return handshake.result()
        except (aiohttp.ClientError, OSError) as e:
            raise LinkConnectionError(f"WebSocket connection failed: {e}") from e

    async def _send_loop(self, ws: aiohttp.ClientWebSocketResponse,
                         bridge: StreamingBridge, cancel: CancellationHandle) -> None:
        stop_requested = asyncio.ensure_future(cancel.wait())
        try:
            while True:
                next_frame = asyncio.ensure_future(bridge.recv())
                done, _ = await asyncio.wait({next_frame, stop_requested},
                                             return_when=asyncio.FIRST_COMPLETED)
                if stop_requested in done:
                    # The caller closes the socket once the reader is cancelled
                    next_frame.cancel()
                    logger.info("Stop signal received")
                    return

                frame: Optional[bytes] = next_frame.result()
                if frame is None:
                    logger.info("Audio stream ended, all producers released")
                    return
                if ws.closed:
                    logger.warning("STT connection closed by peer, stopping sender")
                    return
                try:
                    await ws.send_bytes(frame)
                except (ConnectionError, aiohttp.ClientError) as e:
                    logger.warning(f"Failed to send audio frame: {e}")
                    return
                self.frames_sent += 1
        finally:
            stop_requested.cancel()

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse,
                         analysis: AnalysisClient) -> None:
        async for message in ws:
            if message.type == aiohttp.WSMsgType.TEXT:
                await self.handle_message(message.data, analysis)
            elif message.type == aiohttp.WSMsgType.ERROR:
                logger.warning(f"STT connection error: {ws.exception()}")
                break
        logger.debug("STT reader finished")

    async def handle_message(self, text: str, analysis: Optional[AnalysisClient] = None) -> None:
        """Dispatch one inbound text message by its type field."""
        data = decode_message(text)
        if data is None:
            return
        message_type = data.get("type")

        if message_type == MESSAGE_TRANSCRIPT:
            chunk = build_transcript_chunk(data)
            if chunk is None:
                return
            self.transcripts_received += 1
            logger.debug(f"Transcript [{chunk.speaker}]: {chunk.text}")
            self.publisher.emit(TRANSCRIPT, chunk.to_dict())
            if analysis is not None:
                await analysis.submit_chunk(self.interview_id, chunk)
        elif message_type == MESSAGE_PROVIDER_SWITCH:
            logger.warning(f"STT provider failover: {data.get('from', '?')} -> {data.get('to', '?')}")
            self.publisher.emit(PROVIDER_SWITCH, data)
        elif message_type == MESSAGE_ERROR:
            logger.error(f"STT proxy error: {data.get('message', 'unknown')}")
            self.publisher.emit(CAPTURE_ERROR, data)
        elif message_type == MESSAGE_CONNECTED:
            logger.info(f"STT proxy confirmed connection: provider={data.get('provider', '?')}")
