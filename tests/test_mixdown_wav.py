import struct

import numpy as np
import pytest

from mixdown.wav import HEADER_SIZE, INT16_MAX, encode, quantize, wav_header


def _fields(data: bytes) -> tuple:
    return struct.unpack("<4sI4s4sIHHIIHH4sI", data[:HEADER_SIZE])


def test_header_layout() -> None:
    samples = np.zeros(10, dtype=np.float32)
    data = encode(samples, 48_000)
    (
        riff,
        riff_size,
        wave,
        fmt,
        fmt_size,
        audio_format,
        channels,
        sample_rate,
        byte_rate,
        block_align,
        bits,
        data_tag,
        data_size,
    ) = _fields(data)
    assert riff == b"RIFF"
    assert wave == b"WAVE"
    assert fmt == b"fmt "
    assert data_tag == b"data"
    assert riff_size == 36 + 2 * 10
    assert fmt_size == 16
    assert audio_format == 1
    assert channels == 2
    assert sample_rate == 48_000
    assert byte_rate == 4 * 48_000
    assert block_align == 4
    assert bits == 16
    assert data_size == 20
    assert len(data) == HEADER_SIZE + 20


def test_header_is_44_bytes() -> None:
    assert len(wav_header(0, 44_100)) == 44


def test_silence_encodes_to_zero_bytes() -> None:
    data = encode(np.zeros(7, dtype=np.float32), 44_100)
    body = data[HEADER_SIZE:]
    assert len(body) == 14
    assert body == bytes(14)


def test_full_scale_maps_to_int16_limits() -> None:
    pcm = quantize([1.0, -1.0])
    assert pcm.tolist() == [INT16_MAX, -INT16_MAX]


def test_out_of_range_values_are_clamped() -> None:
    pcm = quantize([3.0, -7.5])
    assert pcm.tolist() == [INT16_MAX, -INT16_MAX]


def test_quantization_truncates_toward_zero() -> None:
    pcm = quantize([0.5, -0.5, 0.00002])
    assert pcm.tolist() == [16383, -16383, 0]


def test_body_is_little_endian() -> None:
    data = encode(np.array([1.0], dtype=np.float32), 44_100)
    assert data[HEADER_SIZE:] == struct.pack("<h", INT16_MAX)


@pytest.mark.parametrize("rate", [8_000, 44_100, 96_000])
def test_byte_rate_tracks_sample_rate(rate: int) -> None:
    assert _fields(encode([], rate))[8] == rate * 4
