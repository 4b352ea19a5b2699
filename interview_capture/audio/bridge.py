"""Bounded bridge carrying PCM frames from capture threads to the asyncio link."""

import asyncio
import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional

logger = logging.getLogger(__name__)

DEFAULT_BRIDGE_CAPACITY = 200


@dataclass
class BridgeStats:
    """Frame counters for one bridge."""
    accepted_frames: int
    dropped_frames: int
    pending_frames: int
    producers: int


class BridgeSender:
    """A producer handle. Safe to use from any thread.

    The bridge stays open while at least one sender is open; closing the last
    one marks the end of the stream for the consumer.
    """

    def __init__(self, bridge: "StreamingBridge"):
        self._bridge = bridge
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, frame: bytes) -> bool:
        """Offer a frame without blocking.

        Returns:
            False if this sender is closed or the consumer's loop is gone.
            A frame accepted here can still be dropped on a full bridge.
        """
        if self._closed:
            return False
        return self._bridge._schedule(self._bridge._offer, bytes(frame))

    def clone(self) -> "BridgeSender":
        """Open another sender on the same bridge."""
        with self._lock:
            if self._closed:
                raise RuntimeError("Cannot clone a closed bridge sender")
            return self._bridge.sender()

    def close(self) -> None:
        """Release this handle. Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        # Released on the loop so frames already scheduled by this sender land first
        if not self._bridge._schedule(self._bridge._release):
            self._bridge._release()


class StreamingBridge:
    """Multi-producer, single-consumer frame channel with drop-newest backpressure.

    Producers never block: a frame arriving while ``capacity`` frames are
    pending is discarded and counted. All queue mutations run on the event
    loop that owns the bridge; producers on other threads reach it through
    ``call_soon_threadsafe``.
    """

    def __init__(self, capacity: int = DEFAULT_BRIDGE_CAPACITY,
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        """Initialize the bridge.

        Args:
            capacity: Maximum number of frames waiting for the consumer
            loop: Loop the consumer runs on (defaults to the running loop)
        """
        if capacity < 1:
            raise ValueError(f"Bridge capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._loop = loop or asyncio.get_running_loop()
        self._frames: Deque[bytes] = deque()
        self._readable = asyncio.Event()
        self._producers = 0
        self._producer_lock = threading.Lock()
        self.accepted_frames = 0
        self.dropped_frames = 0

    def sender(self) -> BridgeSender:
        """Open a new producer handle."""
        with self._producer_lock:
            self._producers += 1
        return BridgeSender(self)

    async def recv(self) -> Optional[bytes]:
        """Wait for the next frame. Returns None once the stream has ended."""
        while not self._frames:
            with self._producer_lock:
                if self._producers == 0:
                    return None
            self._readable.clear()
            await self._readable.wait()
        return self._frames.popleft()

    def get_stats(self) -> BridgeStats:
        with self._producer_lock:
            producers = self._producers
        return BridgeStats(
            accepted_frames=self.accepted_frames,
            dropped_frames=self.dropped_frames,
            pending_frames=len(self._frames),
            producers=producers,
        )

    def _schedule(self, callback, *args) -> bool:
        try:
            self._loop.call_soon_threadsafe(callback, *args)
            return True
        except RuntimeError:
            # Loop already closed; nobody is left to consume
            return False

    def _offer(self, frame: bytes) -> None:
        if len(self._frames) >= self.capacity:
            self.dropped_frames += 1
            if self.dropped_frames == 1 or self.dropped_frames % 100 == 0:
                logger.warning(f"Bridge full ({self.capacity} frames), "
                               f"dropped {self.dropped_frames} frames so far")
            return
        self._frames.append(frame)
        self.accepted_frames += 1
        self._readable.set()

    def _release(self) -> None:
        with self._producer_lock:
            self._producers -= 1
            remaining = self._producers
        if remaining == 0:
            logger.debug("All bridge producers released")
        self._readable.set()
