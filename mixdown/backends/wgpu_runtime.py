from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

from ..errors import DeviceError
from .runtime import BufferCopy, BufferUsage, DispatchGrid, MapCallback

_LOGGER = logging.getLogger("mixdown.backends.wgpu")

_LIMIT_KEYS = (
    "max-buffer-size",
    "max-storage-buffer-binding-size",
    "max-compute-workgroups-per-dimension",
)


def _import_wgpu() -> Any:
    try:
        import wgpu  # type: ignore[import]
    except ImportError as exc:
        _LOGGER.info("wgpu not available: %s", exc, exc_info=True)
        raise DeviceError(
            "The GPU backend requires wgpu. Install it with `pip install mixdown[gpu]`."
        ) from exc
    return wgpu


class WgpuRuntime:
    """GPU runtime backed by wgpu-py.

    Requests the adapter's own buffer and dispatch limits so long mixes are
    not held to the WebGPU defaults.
    """

    name = "wgpu"

    def __init__(self, *, power_preference: str = "high-performance") -> None:
        wgpu = _import_wgpu()
        self._wgpu = wgpu
        try:
            adapter = wgpu.gpu.request_adapter_sync(power_preference=power_preference)
            if adapter is None:
                raise DeviceError("No GPU adapter available")
            adapter_limits = adapter.limits
            required = {key: adapter_limits[key] for key in _LIMIT_KEYS if key in adapter_limits}
            self._device = adapter.request_device_sync(required_limits=required)
        except DeviceError:
            raise
        except Exception as exc:
            raise DeviceError(f"Could not acquire a GPU device: {exc}") from exc

        limits = self._device.limits
        self.max_workgroups_per_dimension = int(limits["max-compute-workgroups-per-dimension"])
        self.max_storage_buffer_size = int(
            min(limits["max-storage-buffer-binding-size"], limits["max-buffer-size"])
        )
        # map_sync blocks until the device resolves the map, so it runs here
        # and poll() only inspects the finished futures.
        self._mapper = ThreadPoolExecutor(max_workers=1, thread_name_prefix="mixdown-wgpu-map")
        self._in_flight: list[tuple[Future[None], MapCallback]] = []
        self._lock = threading.Lock()
        info = getattr(adapter, "info", None) or {}
        _LOGGER.info(
            "Using GPU adapter %s (%s)",
            info.get("device", "unknown"),
            info.get("backend_type", "unknown"),
        )

    def _usage(self, usage: BufferUsage) -> int:
        flags = self._wgpu.BufferUsage
        mapping = {
            BufferUsage.UNIFORM: flags.UNIFORM | flags.COPY_DST,
            BufferUsage.STORAGE_READ: flags.STORAGE | flags.COPY_DST,
            BufferUsage.STORAGE_READ_WRITE: flags.STORAGE,
            BufferUsage.MAP_READ: flags.MAP_READ,
            BufferUsage.COPY_SRC: flags.COPY_SRC,
            BufferUsage.COPY_DST: flags.COPY_DST,
        }
        result = 0
        for member, native in mapping.items():
            if usage & member:
                result |= native
        return result

    def create_buffer(self, size: int, usage: BufferUsage, data: bytes | None = None) -> Any:
        native = self._usage(usage)
        if data is not None:
            return self._device.create_buffer_with_data(data=data, usage=native)
        return self._device.create_buffer(size=size, usage=native)

    def create_pipeline(self, shader_source: str, entry_point: str) -> Any:
        try:
            module = self._device.create_shader_module(code=shader_source)
            return self._device.create_compute_pipeline(
                layout="auto",
                compute={"module": module, "entry_point": entry_point},
            )
        except Exception as exc:
            raise DeviceError(f"Failed to build compute pipeline: {exc}") from exc

    def submit(
        self,
        pipeline: Any,
        bindings: Sequence[Any],
        grid: DispatchGrid,
        copies: Sequence[BufferCopy] = (),
    ) -> None:
        bind_group = self._device.create_bind_group(
            layout=pipeline.get_bind_group_layout(0),
            entries=[
                {"binding": index, "resource": {"buffer": buffer, "offset": 0, "size": buffer.size}}
                for index, buffer in enumerate(bindings)
            ],
        )
        encoder = self._device.create_command_encoder()
        compute_pass = encoder.begin_compute_pass()
        compute_pass.set_pipeline(pipeline)
        compute_pass.set_bind_group(0, bind_group)
        compute_pass.dispatch_workgroups(grid.x_groups, grid.y_groups, 1)
        compute_pass.end()
        for copy in copies:
            encoder.copy_buffer_to_buffer(copy.source, 0, copy.destination, 0, copy.size)
        self._device.queue.submit([encoder.finish()])

    def map_read(self, buffer: Any, callback: MapCallback) -> None:
        future = self._mapper.submit(buffer.map_sync, self._wgpu.MapMode.READ)
        with self._lock:
            self._in_flight.append((future, callback))

    def poll(self) -> bool:
        """Fire callbacks for finished maps without blocking.

        A request stays pending until its callback has fired, and callbacks
        fire under the lock, so a concurrent poller never sees its own
        request vanish before completion.
        """
        with self._lock:
            waiting: list[tuple[Future[None], MapCallback]] = []
            for future, callback in self._in_flight:
                if not future.done():
                    waiting.append((future, callback))
                    continue
                if future.cancelled():
                    callback(False, "Map-for-read cancelled by runtime shutdown")
                    continue
                exc = future.exception()
                if exc is None:
                    callback(True, None)
                else:
                    _LOGGER.warning("GPU map-for-read failed: %s", exc, exc_info=exc)
                    callback(False, str(exc))
            self._in_flight = waiting
            return bool(waiting)

    def read_mapped(self, buffer: Any) -> bytes:
        return bytes(buffer.read_mapped())

    def unmap(self, buffer: Any) -> None:
        buffer.unmap()

    def destroy(self, buffer: Any) -> None:
        buffer.destroy()

    def close(self) -> None:
        self._mapper.shutdown(wait=True, cancel_futures=True)
        device, self._device = self._device, None
        if device is not None:
            device.destroy()


def gpu_available() -> bool:
    try:
        runtime = WgpuRuntime()
    except DeviceError:
        return False
    runtime.close()
    return True
