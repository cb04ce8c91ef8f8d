from __future__ import annotations

import enum
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Callable, Protocol, runtime_checkable

MapCallback = Callable[[bool, str | None], None]


class BufferUsage(enum.IntFlag):
    UNIFORM = enum.auto()
    STORAGE_READ = enum.auto()
    STORAGE_READ_WRITE = enum.auto()
    MAP_READ = enum.auto()
    COPY_SRC = enum.auto()
    COPY_DST = enum.auto()


@dataclass(frozen=True, slots=True)
class DispatchGrid:
    """Workgroup counts for a 2D dispatch covering a flat index range."""

    x_groups: int
    y_groups: int
    workgroup_size: int

    @property
    def row_width(self) -> int:
        return self.x_groups * self.workgroup_size

    @property
    def invocations(self) -> int:
        return self.row_width * self.y_groups


@dataclass(frozen=True, slots=True)
class BufferCopy:
    source: Any
    destination: Any
    size: int


@runtime_checkable
class GpuRuntime(Protocol):
    """The slice of a GPU compute API the reducer depends on.

    A runtime owns one device and queue. Buffers and pipelines it returns are
    opaque handles that only make sense when passed back to the same runtime.
    `map_read` only queues the request and the callback fires from inside
    `poll`. `poll` must not block: the async waiter calls it on the event
    loop thread between sleeps.
    """

    name: str
    max_workgroups_per_dimension: int
    max_storage_buffer_size: int

    def create_buffer(
        self, size: int, usage: BufferUsage, data: bytes | None = None
    ) -> Any: ...

    def create_pipeline(self, shader_source: str, entry_point: str) -> Any: ...

    def submit(
        self,
        pipeline: Any,
        bindings: Sequence[Any],
        grid: DispatchGrid,
        copies: Sequence[BufferCopy] = (),
    ) -> None: ...

    def map_read(self, buffer: Any, callback: MapCallback) -> None: ...

    def poll(self) -> bool:
        """Fire callbacks for finished maps. Returns True while any request is unresolved."""
        ...

    def read_mapped(self, buffer: Any) -> bytes: ...

    def unmap(self, buffer: Any) -> None: ...

    def destroy(self, buffer: Any) -> None: ...

    def close(self) -> None: ...
