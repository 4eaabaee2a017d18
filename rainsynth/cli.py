from __future__ import annotations

import argparse
import logging
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .audio import SAMPLE_RATE, describe_buffer
from .config import DEFAULT_HIGH_PASS_CUTOFF, DEFAULT_LOW_PASS_CUTOFF, EngineConfig, parse_config
from .crossover import linkwitz_riley_coefficients, magnitude_response
from .engine import RainSynth
from .logging_utils import configure_logging, debug_enabled, log_exception

_LOGGER = logging.getLogger("rainsynth.cli")
_CONSOLE = Console()
_DEFAULTS = EngineConfig()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rainsynth")
    sub = parser.add_subparsers(dest="command", required=True)

    render = sub.add_parser("render", help="Render rain in memory and report buffer statistics.")
    render.add_argument("--duration", type=float, default=_DEFAULTS.duration)
    render.add_argument("--sample-rate", type=float, default=float(SAMPLE_RATE))
    render.add_argument("--rain-intensity", type=float, default=_DEFAULTS.rain_intensity)
    render.add_argument(
        "--background-intensity", type=float, default=_DEFAULTS.background_intensity
    )
    render.add_argument("--min-drop-freq", type=int, default=_DEFAULTS.min_drop_freq)
    render.add_argument("--max-drop-freq", type=int, default=_DEFAULTS.max_drop_freq)
    render.add_argument(
        "--max-oscillations", type=int, default=_DEFAULTS.max_oscillations_per_drop
    )
    render.add_argument("--sample-width", type=int, choices=[32, 64], default=64)
    render.add_argument("--high-pass", type=float, default=DEFAULT_HIGH_PASS_CUTOFF)
    render.add_argument("--low-pass", type=float, default=DEFAULT_LOW_PASS_CUTOFF)
    render.add_argument("--wind", action="store_true", help="Enable wind gusts.")
    render.add_argument(
        "--legacy-acceptance",
        action="store_true",
        help="Use the 1 / (sample_rate * intensity) droplet acceptance formula.",
    )
    render.add_argument("--seed", type=int, default=None)

    coefficients = sub.add_parser("coefficients", help="Print Linkwitz-Riley coefficients.")
    coefficients.add_argument("--kind", choices=["high", "low"], required=True)
    coefficients.add_argument("--cutoff", type=float, required=True)
    coefficients.add_argument("--sample-rate", type=float, default=float(SAMPLE_RATE))
    return parser


def _config_from_args(args: argparse.Namespace) -> EngineConfig:
    payload: dict[str, Any] = {
        "duration": args.duration,
        "sample_rate": args.sample_rate,
        "rain_intensity": args.rain_intensity,
        "background_intensity": args.background_intensity,
        "min_drop_freq": args.min_drop_freq,
        "max_drop_freq": args.max_drop_freq,
        "max_oscillations_per_drop": args.max_oscillations,
        "sample_width": args.sample_width,
        "high_pass_cutoff": args.high_pass,
        "low_pass_cutoff": args.low_pass,
        "wind": args.wind,
        "acceptance": "legacy" if args.legacy_acceptance else "intensity",
        "seed": args.seed,
    }
    return parse_config(payload)


def _render(args: argparse.Namespace) -> int:
    config = _config_from_args(args)
    with _CONSOLE.status("Rendering rain"):
        report = RainSynth(seed=config.seed).render(config)
    stats = describe_buffer(report.samples)

    table = Table(title="rainsynth render")
    table.add_column("metric")
    table.add_column("value", justify="right")
    table.add_row("samples", str(stats.samples))
    table.add_row("sample rate", f"{report.sample_rate:g} Hz")
    table.add_row("dtype", str(report.samples.dtype))
    table.add_row("droplets armed", str(report.droplets_armed))
    table.add_row("droplets sounded", str(report.droplets_sounded))
    table.add_row("wind gusts", str(report.gusts))
    table.add_row("peak", f"{stats.peak:.6f}")
    table.add_row("rms", f"{stats.rms:.6f}")
    table.add_row("finite", str(stats.finite))
    _CONSOLE.print(table)
    return 0 if stats.finite else 1


def _coefficients(args: argparse.Namespace) -> int:
    coeffs = linkwitz_riley_coefficients(args.kind, args.cutoff, args.sample_rate)
    table = Table(title=f"{args.kind}-pass {args.cutoff:g} Hz @ {args.sample_rate:g} Hz")
    table.add_column("term")
    table.add_column("value", justify="right")
    for name in ("a0", "a1", "a2", "a3", "a4", "b1", "b2", "b3", "b4"):
        table.add_row(name, repr(getattr(coeffs, name)))
    (gain,) = magnitude_response(coeffs, [args.cutoff])
    table.add_row("gain at cutoff", f"{gain:.4f}")
    _CONSOLE.print(table)
    return 0


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    try:
        parser = build_parser()
        args = parser.parse_args(argv)

        if args.command == "render":
            return _render(args)
        if args.command == "coefficients":
            return _coefficients(args)

        parser.print_help()
        return 1
    except Exception as exc:
        debug = debug_enabled()
        _LOGGER.warning("rainsynth CLI failed: %s", exc, exc_info=debug)
        log_exception("rainsynth CLI", exc)
        _CONSOLE.print(f"[red]rainsynth failed:[/red] {type(exc).__name__}: {escape(str(exc))}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
