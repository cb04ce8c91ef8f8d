from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path
from typing import Iterable

from rich.console import Console
from rich.markup import escape

from .audio import AudioFile
from .combiner import AudioCombiner
from .config import DEFAULT_SAMPLE_RATE, MixerConfig
from .errors import DeviceError
from .logging_utils import configure_logging, get_log_path, log_exception
from .spinner import Spinner, render_error

_LOGGER = logging.getLogger("mixdown.cli")
_CONSOLE = Console()


def _report(lines: Iterable[str]) -> None:
    for line in lines:
        _CONSOLE.print(line, highlight=False, soft_wrap=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mixdown")
    sub = parser.add_subparsers(dest="command", required=True)

    mix = sub.add_parser("mix", help="Mix audio files into one stereo WAV.")
    mix.add_argument("inputs", nargs="+", type=Path)
    mix.add_argument("-o", "--output", type=Path, default=Path("mix.wav"))
    mix.add_argument(
        "-v",
        "--volume",
        dest="volumes",
        action="append",
        type=int,
        default=[],
        help="Volume percent for the next input, in order. Missing entries play at 100.",
    )
    mix.add_argument("--backend", choices=["cpu", "gpu"], default=None)
    mix.add_argument(
        "--fallback-cpu",
        action="store_true",
        help="Use the CPU mixer if no GPU device can be acquired.",
    )
    mix.add_argument("--sample-rate", type=int, default=None)

    sub.add_parser("doctor", help="Check which mixing backends are usable.")
    return parser


def _open_combiner(files: list[AudioFile], config: MixerConfig, fallback: bool) -> AudioCombiner:
    try:
        return AudioCombiner.new(files, config=config)
    except DeviceError as exc:
        if config.backend != "gpu" or not fallback:
            raise
        _LOGGER.warning("GPU backend unavailable (%s); falling back to CPU.", exc)
        _CONSOLE.print(f"[yellow]GPU unavailable, mixing on CPU:[/] {escape(str(exc))}")
        return AudioCombiner.new(files, config=config.model_copy(update={"backend": "cpu"}))


def _run_mix(args: argparse.Namespace) -> int:
    overrides: dict[str, object] = {}
    if args.backend is not None:
        overrides["backend"] = args.backend
    if args.sample_rate is not None:
        overrides["sample_rate"] = args.sample_rate
    config = MixerConfig.from_env(**overrides)

    files = [AudioFile.from_path(path) for path in args.inputs]
    with Spinner(f"Decoding {len(files)} tracks") as spinner:
        combiner = _open_combiner(files, config, args.fallback_cpu)
        with combiner:
            spinner.update(f"Mixing on {combiner.strategy.name}")
            result = combiner.combine(args.volumes)
    path = result.save(args.output)
    _CONSOLE.print(
        f"Wrote {path} ({len(files)} tracks, {combiner.strategy.name}, "
        f"sr={combiner.config.sample_rate})",
        highlight=False,
    )
    return 0


def _run_doctor() -> int:
    from .backends.wgpu_runtime import WgpuRuntime

    lines = [
        f"Default sample rate: {DEFAULT_SAMPLE_RATE}",
        f"CPU workers: {os.cpu_count() or 1}",
    ]
    try:
        runtime = WgpuRuntime()
    except DeviceError as exc:
        lines.append(f"GPU backend: unavailable ({exc})")
    else:
        lines.append(
            f"GPU backend: available (max workgroups/dim "
            f"{runtime.max_workgroups_per_dimension}, max storage buffer "
            f"{runtime.max_storage_buffer_size} bytes)"
        )
        runtime.close()
    lines.append(f"Log file: {get_log_path()}")
    _report(lines)
    return 0


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    try:
        parser = build_parser()
        args = parser.parse_args(argv)

        if args.command == "mix":
            return _run_mix(args)
        if args.command == "doctor":
            return _run_doctor()

        parser.print_help()
        return 1
    except Exception as exc:
        debug = bool(os.environ.get("MIXDOWN_DEBUG"))
        _LOGGER.warning("mixdown CLI failed: %s", exc, exc_info=debug)
        log_exception("mixdown CLI", exc)
        render_error("mixdown", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
