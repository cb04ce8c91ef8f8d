from __future__ import annotations

import asyncio
import logging
import os
import threading
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from ..audio import FloatArray, Track, master_length, volume_factors
from ..config import DEFAULT_CHUNK_SIZE

_LOGGER = logging.getLogger("mixdown.backends.cpu")


def mix_range(
    tracks: Sequence[Track],
    factors: FloatArray,
    out: FloatArray,
    start: int,
    stop: int,
) -> None:
    """Fill `out[start:stop]` with the weighted sum of every track.

    Tracks are accumulated in input order so each index sees the same
    float32 summation sequence however the range is split.
    """

    for track, factor in zip(tracks, factors):
        end = min(stop, track.sample_count)
        if end <= start:
            continue
        out[start:end] += track.samples[start:end] * factor


class CpuReducer:
    """Chunked data-parallel reduction on a thread pool."""

    name = "cpu"

    def __init__(
        self,
        *,
        workers: int | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._workers = workers or os.cpu_count() or 1
        self._chunk_size = chunk_size
        self._executor: ThreadPoolExecutor | None = None
        self._lock = threading.Lock()

    @property
    def workers(self) -> int:
        return self._workers

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    def _pool(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._workers,
                    thread_name_prefix="mixdown-cpu",
                )
            return self._executor

    def reduce(self, tracks: Sequence[Track], volumes: Sequence[int]) -> FloatArray:
        factors = volume_factors(volumes, len(tracks))
        length = master_length(tracks)
        out = np.zeros(length, dtype=np.float32)
        if length == 0:
            return out

        bounds = [
            (start, min(start + self._chunk_size, length))
            for start in range(0, length, self._chunk_size)
        ]
        if len(bounds) == 1 or self._workers == 1:
            for start, stop in bounds:
                mix_range(tracks, factors, out, start, stop)
            return out

        pool = self._pool()
        futures = [
            pool.submit(mix_range, tracks, factors, out, start, stop) for start, stop in bounds
        ]
        for future in futures:
            future.result()
        _LOGGER.debug(
            "Mixed %d tracks into %d samples over %d chunks", len(tracks), length, len(bounds)
        )
        return out

    async def areduce(self, tracks: Sequence[Track], volumes: Sequence[int]) -> FloatArray:
        return await asyncio.to_thread(self.reduce, tracks, volumes)

    def close(self) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)
