from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from ..audio import FloatArray, Track


@runtime_checkable
class MixingStrategy(Protocol):
    """Reduces decoded tracks into one volume-weighted master buffer.

    Implementations must return `max(len(track))` float32 samples, treat
    positions past a track's end as silence and use a factor of 1.0 for
    tracks without a volume entry.
    """

    name: str

    def reduce(self, tracks: Sequence[Track], volumes: Sequence[int]) -> FloatArray: ...

    async def areduce(self, tracks: Sequence[Track], volumes: Sequence[int]) -> FloatArray: ...

    def close(self) -> None: ...
