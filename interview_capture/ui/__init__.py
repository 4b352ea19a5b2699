"""Console output for the interview-capture CLI."""

from .transcript_printer import TranscriptPrinter, print_device_table

__all__ = ["TranscriptPrinter", "print_device_table"]
