from __future__ import annotations

import io
import struct
from collections.abc import Sequence
from typing import Any, Callable

import numpy as np
import pytest
import soundfile as sf  # type: ignore[import]

from mixdown.audio import AudioFile
from mixdown.backends.gpu import flat_index
from mixdown.backends.runtime import BufferCopy, BufferUsage, DispatchGrid, MapCallback
from mixdown.errors import DeviceError


class EmulatedBuffer:
    def __init__(self, size: int, usage: BufferUsage, data: bytes | None) -> None:
        if data is not None:
            assert len(data) == size
        self.size = size
        self.usage = usage
        self.data = bytearray(data if data is not None else bytes(size))
        self.mapped = False
        self.destroyed = False


class EmulatedRuntime:
    """Runs the mixing kernel on the host, one numpy lane per invocation."""

    name = "emulated"

    def __init__(
        self,
        *,
        max_workgroups_per_dimension: int = 65_535,
        max_storage_buffer_size: int = 1 << 30,
        map_mode: str = "ok",
        fail_pipeline: bool = False,
    ) -> None:
        self.max_workgroups_per_dimension = max_workgroups_per_dimension
        self.max_storage_buffer_size = max_storage_buffer_size
        self.map_mode = map_mode
        self.fail_pipeline = fail_pipeline
        self.buffers: list[EmulatedBuffer] = []
        self.grids: list[DispatchGrid] = []
        self.shader_sources: list[str] = []
        self.polls = 0
        self.closed = False
        self._pending: list[tuple[EmulatedBuffer, MapCallback]] = []

    def create_buffer(
        self, size: int, usage: BufferUsage, data: bytes | None = None
    ) -> EmulatedBuffer:
        buffer = EmulatedBuffer(size, usage, data)
        self.buffers.append(buffer)
        return buffer

    def create_pipeline(self, shader_source: str, entry_point: str) -> Any:
        if self.fail_pipeline:
            raise DeviceError("shader compilation failed")
        self.shader_sources.append(shader_source)
        return ("pipeline", entry_point)

    def submit(
        self,
        pipeline: Any,
        bindings: Sequence[EmulatedBuffer],
        grid: DispatchGrid,
        copies: Sequence[BufferCopy] = (),
    ) -> None:
        params, samples, gains, output = bindings
        assert params.usage & BufferUsage.UNIFORM
        assert output.usage & BufferUsage.STORAGE_READ_WRITE
        num_tracks, length = struct.unpack("<II", bytes(params.data))
        lanes = np.frombuffer(bytes(samples.data), dtype="<f4").reshape(num_tracks, length)
        factors = np.frombuffer(bytes(gains.data), dtype="<f4")

        gid_y, gid_x = np.meshgrid(
            np.arange(grid.y_groups), np.arange(grid.row_width), indexing="ij"
        )
        indices = np.asarray(flat_index(gid_x, gid_y, grid)).ravel()
        indices = indices[indices < length]
        assert indices.size == length
        assert np.unique(indices).size == length

        mixed = np.zeros(indices.size, dtype=np.float32)
        for track in range(num_tracks):
            mixed += lanes[track, indices] * factors[track]
        out = np.frombuffer(output.data, dtype="<f4")
        out[indices] = mixed

        for copy in copies:
            copy.destination.data[: copy.size] = copy.source.data[: copy.size]
        self.grids.append(grid)

    def map_read(self, buffer: EmulatedBuffer, callback: MapCallback) -> None:
        assert buffer.usage & BufferUsage.MAP_READ
        self._pending.append((buffer, callback))

    def poll(self) -> bool:
        self.polls += 1
        if self.map_mode == "stall":
            return True
        pending, self._pending = self._pending, []
        if self.map_mode == "drop":
            return False
        for buffer, callback in pending:
            if self.map_mode == "fail":
                callback(False, "device lost")
            else:
                buffer.mapped = True
                callback(True, None)
        return False

    def read_mapped(self, buffer: EmulatedBuffer) -> bytes:
        assert buffer.mapped
        return bytes(buffer.data)

    def unmap(self, buffer: EmulatedBuffer) -> None:
        buffer.mapped = False

    def destroy(self, buffer: EmulatedBuffer) -> None:
        buffer.destroyed = True

    def close(self) -> None:
        self.closed = True


def encode_with_soundfile(
    frames: np.ndarray,
    *,
    sample_rate: int = 44_100,
    format: str = "WAV",
    subtype: str = "FLOAT",
) -> bytes:
    handle = io.BytesIO()
    sf.write(handle, frames, sample_rate, format=format, subtype=subtype)
    return handle.getvalue()


@pytest.fixture
def emulated_runtime() -> EmulatedRuntime:
    return EmulatedRuntime()


@pytest.fixture
def make_runtime() -> Callable[..., EmulatedRuntime]:
    return EmulatedRuntime


@pytest.fixture
def wav_file() -> Callable[..., AudioFile]:
    def _build(frames: np.ndarray, *, sample_rate: int = 44_100) -> AudioFile:
        data = encode_with_soundfile(np.asarray(frames, dtype=np.float32), sample_rate=sample_rate)
        return AudioFile(bytes=data, type="wav")

    return _build


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(1234)


@pytest.fixture
def encode_audio() -> Callable[..., bytes]:
    return encode_with_soundfile
