from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any, Literal, Mapping

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, ConfigDict, field_validator

from .errors import DecodeError, InvalidConfigError

FloatArray = NDArray[np.float32]
AudioNumbers = NDArray[np.floating[Any]] | Sequence[float] | FloatArray

AudioFileType = Literal["wav", "mpeg", "ogg"]

STEREO_CHANNELS = 2

_EXTENSION_TYPES: Mapping[str, AudioFileType] = {
    ".wav": "wav",
    ".wave": "wav",
    ".mp3": "mpeg",
    ".mpeg": "mpeg",
    ".ogg": "ogg",
    ".oga": "ogg",
}


class AudioFile(BaseModel):
    """Encoded audio bytes tagged with their container type."""

    bytes: bytes
    type: AudioFileType

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def from_path(cls, path: str | Path, type: AudioFileType | None = None) -> "AudioFile":
        source = Path(path)
        return cls(bytes=source.read_bytes(), type=type or file_type_for(source))

    def save(self, path: str | Path) -> Path:
        target = Path(path)
        target.write_bytes(self.bytes)
        return target


def file_type_for(path: str | Path) -> AudioFileType:
    suffix = Path(path).suffix.lower()
    try:
        return _EXTENSION_TYPES[suffix]
    except KeyError:
        raise InvalidConfigError(
            f"Cannot infer audio type from extension {suffix or '<none>'!r}"
        ) from None


def to_stereo(frames: AudioNumbers) -> FloatArray:
    """Interleave a (frames, channels) block as stereo.

    Mono is duplicated into both sides. Anything wider keeps channels 0 and 1
    and drops the rest.
    """

    block = np.asarray(frames, dtype=np.float32)
    if block.ndim == 1:
        block = block.reshape(-1, 1)
    if block.ndim != 2 or block.shape[1] == 0:
        raise DecodeError("No usable audio channels")
    if block.shape[1] == 1:
        stereo = np.repeat(block, STEREO_CHANNELS, axis=1)
    else:
        stereo = block[:, :STEREO_CHANNELS]
    return np.ascontiguousarray(stereo, dtype=np.float32).reshape(-1)


def volume_factors(volumes: Sequence[int], num_tracks: int) -> FloatArray:
    """Per-track linear gains; tracks without a volume entry play at full level."""

    factors = np.ones(num_tracks, dtype=np.float32)
    for index, volume in enumerate(volumes[:num_tracks]):
        if volume < 0:
            raise InvalidConfigError(f"Volume for track {index} must be >= 0, got {volume}")
        factors[index] = np.float32(volume) / np.float32(100.0)
    return factors


class Track(BaseModel):
    """One decoded input, stored as read-only interleaved stereo float32."""

    samples: FloatArray
    source_sample_rate: int | None = None

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=True,
    )

    @field_validator("samples", mode="before")
    @classmethod
    def _coerce_samples(cls, value: object) -> FloatArray:
        samples = np.array(value, dtype=np.float32).reshape(-1)
        samples.setflags(write=False)
        return samples

    @classmethod
    def from_frames(cls, frames: AudioNumbers, *, sample_rate: int | None = None) -> "Track":
        return cls(samples=to_stereo(frames), source_sample_rate=sample_rate)

    @property
    def sample_count(self) -> int:
        return int(self.samples.size)

    def __len__(self) -> int:
        return self.sample_count


def master_length(tracks: Sequence[Track]) -> int:
    return max((track.sample_count for track in tracks), default=0)
