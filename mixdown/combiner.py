from __future__ import annotations

import logging
from collections.abc import Sequence
from types import TracebackType

from .audio import AudioFile, FloatArray, Track, master_length
from .backends import GpuRuntime, MixingStrategy, create_strategy
from .config import MixerConfig
from .decode import decode_tracks
from .errors import EmptyInputError, MixdownError
from .wav import encode

_LOGGER = logging.getLogger("mixdown.combiner")


class AudioCombiner:
    """Decoded tracks plus the strategy that mixes them.

    Construction decodes every input; if any file fails, nothing is built.
    `combine` can then be called any number of times with different volumes.
    """

    def __init__(
        self,
        tracks: Sequence[Track],
        *,
        config: MixerConfig | None = None,
        strategy: MixingStrategy | None = None,
    ) -> None:
        self.config = config or MixerConfig()
        self._tracks: tuple[Track, ...] = tuple(tracks)
        self._strategy = strategy or create_strategy(self.config)
        self._closed = False

    @classmethod
    def new(
        cls,
        files: Sequence[AudioFile],
        *,
        config: MixerConfig | None = None,
        runtime: GpuRuntime | None = None,
    ) -> "AudioCombiner":
        resolved = config or MixerConfig()
        tracks = decode_tracks(
            files,
            max_workers=resolved.decode_workers,
            sample_rate=resolved.sample_rate,
        )
        strategy = create_strategy(resolved, runtime=runtime)
        _LOGGER.info("Prepared %d tracks for %s mixing", len(tracks), strategy.name)
        return cls(tracks, config=resolved, strategy=strategy)

    @property
    def tracks(self) -> tuple[Track, ...]:
        return self._tracks

    @property
    def strategy(self) -> MixingStrategy:
        return self._strategy

    def _check_ready(self) -> None:
        if self._closed:
            raise MixdownError("AudioCombiner is closed")
        if master_length(self._tracks) == 0:
            raise EmptyInputError("No audio to mix: no tracks or every track is empty")

    def mix(self, volumes: Sequence[int] = ()) -> FloatArray:
        """Master buffer before quantization."""

        self._check_ready()
        return self._strategy.reduce(self._tracks, volumes)

    async def amix(self, volumes: Sequence[int] = ()) -> FloatArray:
        self._check_ready()
        return await self._strategy.areduce(self._tracks, volumes)

    def combine(self, volumes: Sequence[int] = ()) -> AudioFile:
        return self._wrap(self.mix(volumes))

    async def acombine(self, volumes: Sequence[int] = ()) -> AudioFile:
        return self._wrap(await self.amix(volumes))

    def _wrap(self, master: FloatArray) -> AudioFile:
        return AudioFile(bytes=encode(master, self.config.sample_rate), type="wav")

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._strategy.close()

    def __enter__(self) -> "AudioCombiner":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


def combine_files(
    files: Sequence[AudioFile],
    volumes: Sequence[int] = (),
    *,
    config: MixerConfig | None = None,
) -> AudioFile:
    """Decode, mix and encode in one call."""

    with AudioCombiner.new(files, config=config) as combiner:
        return combiner.combine(volumes)
