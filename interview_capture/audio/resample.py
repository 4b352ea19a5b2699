"""Normalization of captured PCM to 16 kHz mono PCM16.

Two stages: channel mixdown by truncating average, then linear-interpolation
rate conversion. Both truncate toward zero when converting back to int16.
"""

from typing import Sequence, Union

import numpy as np

TARGET_SAMPLE_RATE = 16000
TARGET_CHANNELS = 1

SampleInput = Union[np.ndarray, Sequence[int]]


def pcm16_from_bytes(data: bytes) -> np.ndarray:
    """Decode little-endian PCM16 bytes. A trailing odd byte is ignored."""
    usable = len(data) - (len(data) % 2)
    return np.frombuffer(data[:usable], dtype="<i2").astype(np.int16)


def to_pcm16_bytes(samples: np.ndarray) -> bytes:
    """Encode int16 samples as little-endian bytes."""
    return np.asarray(samples, dtype=np.int16).astype("<i2").tobytes()


def float_to_pcm16(samples: SampleInput) -> np.ndarray:
    """Scale float samples in [-1, 1] to int16, clamping out-of-range values."""
    values = np.nan_to_num(np.asarray(samples, dtype=np.float64))
    scaled = np.clip(values * 32767.0, -32768.0, 32767.0)
    return scaled.astype(np.int16)


def mixdown(samples: np.ndarray, source_channels: int) -> np.ndarray:
    """Average interleaved frames down to one channel.

    Samples that do not complete a full frame are dropped.
    """
    if source_channels <= 1:
        return samples
    frame_count = len(samples) // source_channels
    frames = samples[:frame_count * source_channels].astype(np.int32)
    frames = frames.reshape(frame_count, source_channels)
    # Integer sum divided by channel count, truncating toward zero
    return np.fix(frames.sum(axis=1) / source_channels).astype(np.int16)


def resample(samples: SampleInput, source_rate: int, source_channels: int) -> np.ndarray:
    """Convert interleaved PCM16 to mono PCM16 at TARGET_SAMPLE_RATE.

    Args:
        samples: Interleaved int16 samples
        source_rate: Sample rate of the input in Hz
        source_channels: Number of interleaved channels in the input

    Returns:
        Mono int16 samples at TARGET_SAMPLE_RATE, in input time order
    """
    samples = np.asarray(samples, dtype=np.int16)
    if samples.size == 0:
        return np.zeros(0, dtype=np.int16)

    mono = mixdown(samples, source_channels)
    if source_rate == TARGET_SAMPLE_RATE or mono.size == 0:
        return mono

    ratio = source_rate / TARGET_SAMPLE_RATE
    output_length = int(len(mono) / ratio)
    positions = np.arange(output_length, dtype=np.float64) * ratio
    indices = positions.astype(np.int64)
    fractions = positions - indices

    # Positions past the end stop the output; the last in-bounds index is copied
    in_bounds = indices < len(mono)
    if not in_bounds.all():
        stop = int(np.argmin(in_bounds))
        indices, fractions = indices[:stop], fractions[:stop]

    output = mono[indices].astype(np.float64)
    interpolate = indices + 1 < len(mono)
    current = output[interpolate]
    following = mono[indices[interpolate] + 1].astype(np.float64)
    output[interpolate] = current + (following - current) * fractions[interpolate]
    return output.astype(np.int16)
