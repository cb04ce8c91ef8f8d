from __future__ import annotations

import asyncio
import io
from pathlib import Path

import numpy as np
import soundfile as sf  # type: ignore[import]

from mixdown import AudioCombiner, AudioFile, DeviceError, MixerConfig

SAMPLE_RATE = 44_100
OUTPUT_DIR = Path(__file__).resolve().parent / "out"


def _tone(freq: float, seconds: float, *, channels: int = 1) -> AudioFile:
    t = np.arange(int(SAMPLE_RATE * seconds), dtype=np.float32) / SAMPLE_RATE
    wave = (0.4 * np.sin(2 * np.pi * freq * t)).astype(np.float32)
    frames = np.repeat(wave[:, None], channels, axis=1)
    handle = io.BytesIO()
    sf.write(handle, frames, SAMPLE_RATE, format="WAV", subtype="FLOAT")
    return AudioFile(bytes=handle.getvalue(), type="wav")


async def _mix_gpu(files: list[AudioFile], volumes: list[int]) -> None:
    try:
        combiner = AudioCombiner.new(files, config=MixerConfig(backend="gpu"))
    except DeviceError as exc:
        print(f"Skipping GPU mix: {exc}")
        return
    with combiner:
        result = await combiner.acombine(volumes)
    print(f"GPU mix -> {result.save(OUTPUT_DIR / 'smoke_gpu.wav')}")


def main() -> None:
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    files = [_tone(220.0, 2.0), _tone(330.0, 1.0, channels=2), _tone(440.0, 3.0, channels=4)]
    volumes = [100, 60]

    with AudioCombiner.new(files) as combiner:
        result = combiner.combine(volumes)
    print(f"CPU mix -> {result.save(OUTPUT_DIR / 'smoke_cpu.wav')}")

    asyncio.run(_mix_gpu(files, volumes))


if __name__ == "__main__":
    main()
