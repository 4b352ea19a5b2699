"""Main application entry point for interview-capture."""

import sys
import asyncio
import argparse
import logging
from pathlib import Path

from interview_capture.audio.capture import list_input_devices
from interview_capture.audio.fallback import select_audio_source
from interview_capture.errors import CaptureError
from interview_capture.models.config import CaptureConfig
from interview_capture.services.capture_session import CaptureSession
from interview_capture.services.event_publisher import CaptureEventPublisher, DEFAULT_EVENT_TOPIC
from interview_capture.ui.transcript_printer import TranscriptPrinter, print_device_table

from .config import CaptureAppConfig

logger = logging.getLogger(__name__)


class CaptureRunner:

    def __init__(self, config_path: str, log_level: str = None, mic_only: bool = False):
        # Load configuration
        self.config = CaptureAppConfig(config_path)
        # Set up logging (override config with command line if specified)
        level = log_level or self.config.get('logging.level', 'INFO')
        setup_logging(self.config, level)
        self.mic_only = mic_only

    def init(self):
        logger.info("Initializing services...")

        self.publisher = CaptureEventPublisher(self.config.get('events.topic', DEFAULT_EVENT_TOPIC))
        self.printer = TranscriptPrinter(self.publisher)

        prefer_system_audio = self.config.get('audio.prefer_system_audio', True) and not self.mic_only
        frames_per_buffer = int(self.config.get('audio.frames_per_buffer', 1024))
        poll_interval = self.config.get_poll_interval()
        bridge_capacity = self.config.get_bridge_capacity()
        logger.info(f"Audio settings: bridge={bridge_capacity} frames, "
                    f"poll={poll_interval * 1000:.0f}ms, system_audio={prefer_system_audio}")

        self.session = CaptureSession(
            publisher=self.publisher,
            source_factory=lambda pub: select_audio_source(
                pub,
                prefer_system_audio=prefer_system_audio,
                frames_per_buffer=frames_per_buffer,
                poll_interval=poll_interval,
            ),
            bridge_capacity=bridge_capacity,
        )
        self.capture_config = CaptureConfig.from_options(self.config.capture_options())

    async def run(self, interview_id, duration: int):
        await self.session.start(interview_id, self.capture_config)
        try:
            if duration:
                await asyncio.sleep(duration)
            else:
                while self.session.is_recording:
                    await asyncio.sleep(0.5)
        finally:
            await self.cleanup()

    async def cleanup(self):
        if self.session.is_recording:
            await self.session.stop()
        await self.session.wait_finished(timeout=15.0)
        self.printer.close()


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/interview_capture.log')
    console_output = config.get('logging.console_output', True)

    # Create logs directory if it doesn't exist
    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    # Console handler - only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger = logging.getLogger(__name__)
    logger.info("="*50)
    logger.info("interview-capture starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("="*50)


def main() -> None:
    """Main entry point for interview-capture."""
    parser = argparse.ArgumentParser(
        description="interview-capture - Stream live interview audio to a speech-to-text proxy",
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: from config, else INFO)"
    )

    parser.add_argument(
        "--interview-id",
        type=str,
        default="0",
        help="Interview identifier forwarded with each transcript chunk"
    )

    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Seconds to capture before stopping (default: 0, until Ctrl+C or the link ends)"
    )

    parser.add_argument(
        "--mic-only",
        action="store_true",
        help="Capture the microphone only, skipping system audio"
    )

    parser.add_argument(
        "--list-devices",
        action="store_true",
        help="List audio input devices and exit"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="interview-capture v0.1.0"
    )

    args = parser.parse_args()

    if args.list_devices:
        print_device_table(list_input_devices())
        return

    if not args.config:
        parser.error("--config is required to start a capture")

    interview_id = int(args.interview_id) if args.interview_id.isdigit() else args.interview_id
    runner = CaptureRunner(args.config, log_level=args.log_level, mic_only=args.mic_only)
    try:
        runner.init()
        asyncio.run(runner.run(interview_id, args.duration))
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
    except (CaptureError, ValueError, FileNotFoundError) as e:
        print(f"❌ Error: {e}")
        logging.error(f"Application error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
