from __future__ import annotations

import asyncio
import logging
import math
import struct
import threading
import time
from collections.abc import Sequence
from concurrent.futures import Future, InvalidStateError
from typing import Any, Callable

import numpy as np
from numpy.typing import NDArray

from ..audio import FloatArray, Track, master_length, volume_factors
from ..config import DEFAULT_MAX_WORKGROUPS, DEFAULT_WORKGROUP_SIZE
from ..errors import DeviceError, SyncError
from .runtime import BufferCopy, BufferUsage, DispatchGrid, GpuRuntime

_LOGGER = logging.getLogger("mixdown.backends.gpu")

ENTRY_POINT = "main"
FLOAT_BYTES = 4

_PARAMS = struct.Struct("<II")

_SHADER_TEMPLATE = """
struct Params {
    num_tracks: u32,
    buffer_len: u32,
};

@group(0) @binding(0) var<uniform> params: Params;
@group(0) @binding(1) var<storage, read> all_samples: array<f32>;
@group(0) @binding(2) var<storage, read> volumes: array<f32>;
@group(0) @binding(3) var<storage, read_write> output: array<f32>;

@compute @workgroup_size(WORKGROUP_SIZE)
fn main(
    @builtin(global_invocation_id) global_id: vec3<u32>,
    @builtin(num_workgroups) num_groups: vec3<u32>,
) {
    let idx = global_id.y * (num_groups.x * WORKGROUP_SIZEu) + global_id.x;
    if (idx >= params.buffer_len) {
        return;
    }
    var sum: f32 = 0.0;
    for (var track: u32 = 0u; track < params.num_tracks; track = track + 1u) {
        sum = sum + all_samples[track * params.buffer_len + idx] * volumes[track];
    }
    output[idx] = sum;
}
"""


def build_shader(workgroup_size: int = DEFAULT_WORKGROUP_SIZE) -> str:
    return _SHADER_TEMPLATE.replace("WORKGROUP_SIZE", str(workgroup_size))


def dispatch_grid(
    length: int,
    workgroup_size: int = DEFAULT_WORKGROUP_SIZE,
    max_groups: int = DEFAULT_MAX_WORKGROUPS,
) -> DispatchGrid:
    """Cover `length` invocations with a grid no wider than `max_groups` per axis.

    Rows are filled to `max_groups` before a new row starts; the last row may
    overshoot, and those invocations are discarded by the index check.
    """

    if workgroup_size <= 0 or max_groups <= 0:
        raise ValueError("workgroup_size and max_groups must be positive")
    total = max(1, math.ceil(length / workgroup_size))
    x_groups = min(total, max_groups)
    y_groups = math.ceil(total / x_groups)
    if y_groups > max_groups:
        raise DeviceError(
            f"{length} samples need {total} workgroups, more than {max_groups}x{max_groups}"
        )
    return DispatchGrid(x_groups=x_groups, y_groups=y_groups, workgroup_size=workgroup_size)


def flat_index(
    gid_x: int | NDArray[np.integer[Any]],
    gid_y: int | NDArray[np.integer[Any]],
    grid: DispatchGrid,
) -> int | NDArray[np.integer[Any]]:
    return gid_y * grid.row_width + gid_x


def flatten_tracks(tracks: Sequence[Track], length: int) -> FloatArray:
    """One zero-filled slot of `length` samples per track, tracks in order."""

    flat = np.zeros(len(tracks) * length, dtype=np.float32)
    for slot, track in enumerate(tracks):
        offset = slot * length
        flat[offset : offset + track.sample_count] = track.samples
    return flat


def pack_params(num_tracks: int, buffer_len: int) -> bytes:
    return _PARAMS.pack(num_tracks, buffer_len)


class ReadbackSignal:
    """Completion flag for one map-for-read request.

    The runtime completes it from its map callback. Nothing completes it on
    its own: the waiter has to keep calling the runtime's `poll`.
    """

    def __init__(self) -> None:
        self._future: Future[None] = Future()

    def __call__(self, ok: bool, error: str | None = None) -> None:
        try:
            if ok:
                self._future.set_result(None)
            else:
                self._future.set_exception(SyncError(error or "Map-for-read failed"))
        except InvalidStateError:
            _LOGGER.debug("Ignoring duplicate readback completion", exc_info=True)

    def done(self) -> bool:
        return self._future.done()

    def result(self) -> None:
        self._future.result(timeout=0)

    def _step(self, drive: Callable[[], bool], deadline: float | None) -> bool:
        pending = drive()
        if self.done():
            return True
        if not pending:
            raise SyncError("Map-for-read channel closed before completion")
        if deadline is not None and time.monotonic() >= deadline:
            raise SyncError("Timed out waiting for GPU readback")
        return False

    def wait(
        self,
        drive: Callable[[], bool],
        *,
        timeout: float | None = None,
        poll_interval: float = 0.0,
    ) -> None:
        deadline = None if timeout is None else time.monotonic() + timeout
        while not self.done() and not self._step(drive, deadline):
            if poll_interval:
                time.sleep(poll_interval)
        self.result()

    async def wait_async(
        self,
        drive: Callable[[], bool],
        *,
        timeout: float | None = None,
        poll_interval: float = 0.0,
    ) -> None:
        deadline = None if timeout is None else time.monotonic() + timeout
        while not self.done() and not self._step(drive, deadline):
            await asyncio.sleep(poll_interval)
        self.result()


class _Submission:
    def __init__(self, length: int, buffers: list[Any], staging: Any) -> None:
        self.length = length
        self.buffers = buffers
        self.staging = staging
        self.signal = ReadbackSignal()


class GpuReducer:
    """Thread-per-sample reduction in a compute shader.

    The runtime and pipeline are built once and reused read-only; every
    `reduce` call allocates and frees its own upload and staging buffers.
    """

    name = "gpu"

    def __init__(
        self,
        runtime: GpuRuntime,
        *,
        workgroup_size: int = DEFAULT_WORKGROUP_SIZE,
        max_workgroups_per_dimension: int = DEFAULT_MAX_WORKGROUPS,
        readback_timeout: float | None = None,
        poll_interval: float = 0.001,
    ) -> None:
        self._runtime = runtime
        self._workgroup_size = workgroup_size
        self._max_groups = min(max_workgroups_per_dimension, runtime.max_workgroups_per_dimension)
        self._readback_timeout = readback_timeout
        self._poll_interval = poll_interval
        self._lock = threading.Lock()
        self.shader_source = build_shader(workgroup_size)
        self._pipeline = runtime.create_pipeline(self.shader_source, ENTRY_POINT)
        _LOGGER.info(
            "GPU reducer ready on %s (workgroup=%d, max groups/dim=%d)",
            runtime.name,
            workgroup_size,
            self._max_groups,
        )

    @property
    def runtime(self) -> GpuRuntime:
        return self._runtime

    def grid_for(self, length: int) -> DispatchGrid:
        return dispatch_grid(length, self._workgroup_size, self._max_groups)

    def reduce(self, tracks: Sequence[Track], volumes: Sequence[int]) -> FloatArray:
        submission = self._submit(tracks, volumes)
        if submission is None:
            return np.zeros(0, dtype=np.float32)
        try:
            submission.signal.wait(
                self._runtime.poll,
                timeout=self._readback_timeout,
                poll_interval=self._poll_interval,
            )
            return self._collect(submission)
        finally:
            self._release(submission)

    async def areduce(self, tracks: Sequence[Track], volumes: Sequence[int]) -> FloatArray:
        submission = self._submit(tracks, volumes)
        if submission is None:
            return np.zeros(0, dtype=np.float32)
        try:
            await submission.signal.wait_async(
                self._runtime.poll,
                timeout=self._readback_timeout,
                poll_interval=self._poll_interval,
            )
            return self._collect(submission)
        finally:
            self._release(submission)

    def _submit(self, tracks: Sequence[Track], volumes: Sequence[int]) -> _Submission | None:
        factors = volume_factors(volumes, len(tracks))
        length = master_length(tracks)
        if length == 0:
            return None

        flat = flatten_tracks(tracks, length)
        if flat.nbytes > self._runtime.max_storage_buffer_size:
            raise DeviceError(
                f"Track upload of {flat.nbytes} bytes exceeds the device limit of "
                f"{self._runtime.max_storage_buffer_size} bytes"
            )
        grid = self.grid_for(length)
        output_bytes = length * FLOAT_BYTES
        runtime = self._runtime

        buffers: list[Any] = []
        try:
            params = runtime.create_buffer(
                _PARAMS.size, BufferUsage.UNIFORM, pack_params(len(tracks), length)
            )
            buffers.append(params)
            samples = runtime.create_buffer(flat.nbytes, BufferUsage.STORAGE_READ, flat.tobytes())
            buffers.append(samples)
            gains = runtime.create_buffer(
                factors.nbytes, BufferUsage.STORAGE_READ, factors.astype("<f4").tobytes()
            )
            buffers.append(gains)
            output = runtime.create_buffer(
                output_bytes, BufferUsage.STORAGE_READ_WRITE | BufferUsage.COPY_SRC
            )
            buffers.append(output)
            staging = runtime.create_buffer(
                output_bytes, BufferUsage.MAP_READ | BufferUsage.COPY_DST
            )
            buffers.append(staging)

            submission = _Submission(length, buffers, staging)
            with self._lock:
                runtime.submit(
                    self._pipeline,
                    [params, samples, gains, output],
                    grid,
                    [BufferCopy(source=output, destination=staging, size=output_bytes)],
                )
                runtime.map_read(staging, submission.signal)
        except BaseException:
            for buffer in buffers:
                runtime.destroy(buffer)
            raise

        _LOGGER.debug(
            "Dispatched %dx%d workgroups for %d tracks x %d samples",
            grid.x_groups,
            grid.y_groups,
            len(tracks),
            length,
        )
        return submission

    def _collect(self, submission: _Submission) -> FloatArray:
        raw = self._runtime.read_mapped(submission.staging)
        try:
            mixed = np.frombuffer(raw, dtype="<f4", count=submission.length)
            return mixed.astype(np.float32, copy=True)
        finally:
            self._runtime.unmap(submission.staging)

    def _release(self, submission: _Submission) -> None:
        for buffer in submission.buffers:
            self._runtime.destroy(buffer)

    def close(self) -> None:
        self._runtime.close()
