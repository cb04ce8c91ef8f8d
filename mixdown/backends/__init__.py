from __future__ import annotations

from ..config import MixerConfig
from .base import MixingStrategy
from .cpu import CpuReducer
from .gpu import GpuReducer, ReadbackSignal, build_shader, dispatch_grid, flat_index
from .runtime import BufferCopy, BufferUsage, DispatchGrid, GpuRuntime


def create_strategy(config: MixerConfig, *, runtime: GpuRuntime | None = None) -> MixingStrategy:
    """Build the reducer named by `config.backend`.

    The GPU path acquires a wgpu device unless a runtime is passed in; any
    acquisition or shader failure surfaces here as DeviceError.
    """

    if config.backend == "cpu":
        return CpuReducer(workers=config.cpu_workers, chunk_size=config.cpu_chunk_size)

    owned = runtime is None
    if runtime is None:
        from .wgpu_runtime import WgpuRuntime

        runtime = WgpuRuntime()
    try:
        return GpuReducer(
            runtime,
            workgroup_size=config.workgroup_size,
            max_workgroups_per_dimension=config.max_workgroups_per_dimension,
            readback_timeout=config.readback_timeout,
            poll_interval=config.poll_interval,
        )
    except BaseException:
        if owned:
            runtime.close()
        raise


__all__ = [
    "BufferCopy",
    "BufferUsage",
    "CpuReducer",
    "DispatchGrid",
    "GpuReducer",
    "GpuRuntime",
    "MixingStrategy",
    "ReadbackSignal",
    "build_shader",
    "create_strategy",
    "dispatch_grid",
    "flat_index",
]
