from __future__ import annotations

import io
import logging
from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Mapping

import numpy as np
import soundfile as sf  # type: ignore[import]
from pydantic import BaseModel, ConfigDict

from .audio import AudioFile, AudioFileType, FloatArray, Track
from .errors import DecodeError

_LOGGER = logging.getLogger("mixdown.decode")

# libsndfile major formats that satisfy each declared type.
_FORMATS_FOR_TYPE: Mapping[AudioFileType, frozenset[str]] = {
    "wav": frozenset({"WAV", "WAVEX", "RF64", "W64"}),
    "mpeg": frozenset({"MP3"}),
    "ogg": frozenset({"OGG"}),
}


class DecodedAudio(BaseModel):
    """Samples as the codec produced them: (frames, channels) at the native rate."""

    frames: FloatArray
    channels: int
    sample_rate: int
    format: str

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=True,
    )


def decode_file(file: AudioFile) -> DecodedAudio:
    """Decode one encoded file with libsndfile.

    The declared type is a hint only; libsndfile sniffs the real container.
    """

    if not file.bytes:
        raise DecodeError("Input is empty")
    try:
        with sf.SoundFile(io.BytesIO(file.bytes)) as handle:
            detected = str(handle.format)
            channels = int(handle.channels)
            sample_rate = int(handle.samplerate)
            frames = handle.read(dtype="float32", always_2d=True)
    except (sf.SoundFileError, RuntimeError) as exc:
        raise DecodeError(f"Unsupported or corrupt {file.type} data: {exc}") from exc

    if channels < 1:
        raise DecodeError("No supported audio track")
    if detected not in _FORMATS_FOR_TYPE[file.type]:
        _LOGGER.warning(
            "Declared type %s but decoder found %s; using decoded audio anyway.",
            file.type,
            detected,
        )
    return DecodedAudio(
        frames=np.asarray(frames, dtype=np.float32),
        channels=channels,
        sample_rate=sample_rate,
        format=detected,
    )


def decode_track(file: AudioFile) -> Track:
    decoded = decode_file(file)
    return Track.from_frames(decoded.frames, sample_rate=decoded.sample_rate)


def decode_tracks(
    files: Sequence[AudioFile],
    *,
    max_workers: int | None = None,
    sample_rate: int | None = None,
) -> list[Track]:
    """Decode every file in parallel, preserving input order.

    The first failure aborts the batch; no partial result is returned.
    """

    if not files:
        return []
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="mixdown-decode") as pool:
        futures: list[Future[Track]] = [pool.submit(decode_track, file) for file in files]
        tracks: list[Track] = []
        for index, future in enumerate(futures):
            try:
                tracks.append(future.result())
            except DecodeError as exc:
                for pending in futures[index + 1 :]:
                    pending.cancel()
                raise DecodeError(str(exc), index=index) from exc

    if sample_rate is not None:
        for index, track in enumerate(tracks):
            if track.source_sample_rate not in (None, sample_rate):
                _LOGGER.warning(
                    "Track %d is %d Hz; mixing as %d Hz without resampling.",
                    index,
                    track.source_sample_rate,
                    sample_rate,
                )
    _LOGGER.debug("Decoded %d tracks", len(tracks))
    return tracks
