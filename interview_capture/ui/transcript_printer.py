"""Console rendering of capture events."""

import logging
from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..models.events import (
    CaptureEvent,
    CAPTURE_ERROR,
    CAPTURE_STARTED,
    CAPTURE_STOPPED,
    CAPTURE_WARNING,
    MIC_STARTED,
    PROVIDER_SWITCH,
    SYSTEM_AUDIO_STARTED,
    TRANSCRIPT,
)

logger = logging.getLogger(__name__)


class TranscriptPrinter:
    """Prints transcripts and lifecycle events as they are published.

    Payload text is escaped so bracketed words such as ``[inaudible]`` are
    printed verbatim instead of being read as rich markup.
    """

    def __init__(self, publisher, console: Optional[Console] = None):
        self.console = console or Console()
        self.publisher = publisher
        self.transcripts: List[dict] = []
        publisher.subscribe(self.on_event)

    def on_event(self, event: CaptureEvent) -> None:
        payload = event.payload
        if event.name == TRANSCRIPT:
            self.transcripts.append(payload)
            speaker = escape(str(payload.get('speaker')))
            text = escape(str(payload.get('text')))
            self.console.print(f"[bold cyan]{speaker}[/] "
                               f"[dim]({payload.get('confidence', 0):.0%})[/] {text}")
        elif event.name == CAPTURE_STARTED:
            source = "mic + system audio" if payload.get("systemAudio") else "mic only"
            self.console.print(f"🎙️  Capture started ({source})", style="green")
        elif event.name == MIC_STARTED:
            self.console.print(f"Microphone: {payload.get('device')}", style="dim", markup=False)
        elif event.name == SYSTEM_AUDIO_STARTED:
            self.console.print(f"System audio: {payload.get('sampleRate')}Hz "
                               f"{payload.get('channels')}ch", style="dim")
        elif event.name == CAPTURE_WARNING:
            self.console.print(f"⚠️  {payload.get('message')} [{payload.get('code')}]",
                               style="yellow", markup=False)
        elif event.name == PROVIDER_SWITCH:
            self.console.print(f"🔀 STT provider switched: {payload.get('from', '?')} → "
                               f"{payload.get('to', '?')}", style="magenta", markup=False)
        elif event.name == CAPTURE_ERROR:
            message = payload.get("error") or payload.get("message") or payload
            self.console.print(f"❌ {message}", style="red", markup=False)
        elif event.name == CAPTURE_STOPPED:
            self.console.print(f"⏹️  Capture stopped ({len(self.transcripts)} transcripts)", style="blue")

    def close(self) -> None:
        self.publisher.unsubscribe(self.on_event)


def print_device_table(devices: List[dict], console: Optional[Console] = None) -> None:
    """Render the input device list as a table."""
    console = console or Console()
    table = Table(title="Input devices")
    table.add_column("Name")
    table.add_column("Sample rate", justify="right")
    table.add_column("Channels", justify="right")
    for device in devices:
        rate = device.get("sampleRate")
        channels = device.get("channels")
        table.add_row(escape(str(device.get("name"))),
                      f"{rate} Hz" if rate else "-",
                      str(channels) if channels else "-")
    console.print(table)
