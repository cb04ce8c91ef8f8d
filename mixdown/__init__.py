from __future__ import annotations

from .audio import (
    AudioFile,
    AudioFileType,
    FloatArray,
    Track,
    file_type_for,
    master_length,
    to_stereo,
    volume_factors,
)
from .backends import CpuReducer, GpuReducer, GpuRuntime, MixingStrategy, create_strategy
from .combiner import AudioCombiner, combine_files
from .config import DEFAULT_SAMPLE_RATE, MixerConfig
from .decode import DecodedAudio, decode_file, decode_tracks
from .errors import (
    DecodeError,
    DeviceError,
    EmptyInputError,
    InvalidConfigError,
    MixdownError,
    SyncError,
)
from .logging_utils import configure_logging as _configure_logging
from .wav import encode

__all__ = [
    "DEFAULT_SAMPLE_RATE",
    "AudioCombiner",
    "AudioFile",
    "AudioFileType",
    "CpuReducer",
    "DecodeError",
    "DecodedAudio",
    "DeviceError",
    "EmptyInputError",
    "FloatArray",
    "GpuReducer",
    "GpuRuntime",
    "InvalidConfigError",
    "MixdownError",
    "MixerConfig",
    "MixingStrategy",
    "SyncError",
    "Track",
    "combine_files",
    "create_strategy",
    "decode_file",
    "decode_tracks",
    "encode",
    "file_type_for",
    "master_length",
    "to_stereo",
    "volume_factors",
]

__version__ = "0.1.0"

_configure_logging()
del _configure_logging
