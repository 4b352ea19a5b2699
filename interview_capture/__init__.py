"""Live interview audio capture streamed to a remote speech-to-text service."""

__version__ = "0.1.0"
