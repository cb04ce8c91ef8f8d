"""Canonical 16-bit PCM stereo WAV writer for mixed master buffers."""

from __future__ import annotations

import struct

import numpy as np

from .audio import STEREO_CHANNELS, AudioNumbers

HEADER_SIZE = 44
BITS_PER_SAMPLE = 16
BYTES_PER_SAMPLE = BITS_PER_SAMPLE // 8
BLOCK_ALIGN = STEREO_CHANNELS * BYTES_PER_SAMPLE
PCM_FORMAT = 1
FMT_CHUNK_SIZE = 16
INT16_MAX = 32767

_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")


def wav_header(num_samples: int, sample_rate: int) -> bytes:
    data_size = num_samples * BYTES_PER_SAMPLE
    return _HEADER.pack(
        b"RIFF",
        HEADER_SIZE - 8 + data_size,
        b"WAVE",
        b"fmt ",
        FMT_CHUNK_SIZE,
        PCM_FORMAT,
        STEREO_CHANNELS,
        sample_rate,
        sample_rate * BLOCK_ALIGN,
        BLOCK_ALIGN,
        BITS_PER_SAMPLE,
        b"data",
        data_size,
    )


def quantize(samples: AudioNumbers) -> np.ndarray:
    """Clamp to [-1, 1], scale by the int16 peak and truncate toward zero."""

    clamped = np.clip(np.asarray(samples, dtype=np.float32).reshape(-1), -1.0, 1.0)
    return (clamped * np.float32(INT16_MAX)).astype("<i2")


def encode(samples: AudioNumbers, sample_rate: int) -> bytes:
    """Serialize interleaved stereo samples as a RIFF/WAVE byte string.

    Clamping happens here and nowhere earlier, so out-of-range sums from the
    mixer survive until quantization.
    """

    pcm = quantize(samples)
    return wav_header(int(pcm.size), sample_rate) + pcm.tobytes()
