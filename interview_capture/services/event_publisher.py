"""Capture event publisher for pub/sub event delivery."""

import logging
from typing import Any, Dict, Optional

from pubsub import pub

from ..models.events import CaptureEvent

logger = logging.getLogger(__name__)

DEFAULT_EVENT_TOPIC = "capture_events"


class CaptureEventPublisher:
    """Publishes capture lifecycle and transcript events using pubsub.pub."""

    def __init__(self, topic: str = DEFAULT_EVENT_TOPIC):
        """Initialize capture event publisher.

        Args:
            topic: Pub/sub topic name for capture events
        """
        self.topic = topic
        logger.info(f"CaptureEventPublisher initialized with topic: {topic}")

    def emit(self, name: str, payload: Optional[Dict[str, Any]] = None) -> None:
        """Publish an event. Listener failures are logged, never raised.

        Args:
            name: Event name, e.g. "capture-started"
            payload: JSON-compatible event body
        """
        event = CaptureEvent(name=name, payload=dict(payload or {}))
        try:
            pub.sendMessage(self.topic, event=event)
        except Exception as e:
            logger.error(f"Listener failed while handling '{name}' event: {e}", exc_info=True)
        logger.debug(f"Published capture event: {name}")

    def subscribe(self, listener) -> None:
        """Subscribe ``listener(event)`` to this publisher's topic."""
        pub.subscribe(listener, self.topic)

    def unsubscribe(self, listener) -> None:
        pub.unsubscribe(listener, self.topic)
