"""One-shot stop signal shared between a session and its link."""

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class CancellationHandle:
    """A stop signal observed by the link at its next select point.

    ``signal`` may be called from any thread and is best-effort: signalling
    after the owning loop has closed is silently a no-op.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop or asyncio.get_running_loop()
        self._event = asyncio.Event()

    @property
    def is_set(self) -> bool:
        return self._event.is_set()

    def signal(self) -> bool:
        """Request a stop. Returns False if the loop is gone."""
        try:
            self._loop.call_soon_threadsafe(self._event.set)
            return True
        except RuntimeError:
            logger.debug("Stop signal dropped, event loop already closed")
            return False

    async def wait(self) -> None:
        await self._event.wait()
