from __future__ import annotations

from .audio import SAMPLE_RATE, BufferStats, describe_buffer
from .config import (
    MAX_DURATION_SECONDS,
    EngineConfig,
    coerce_config,
    parse_config,
)
from .crossover import (
    FilterCoefficients,
    apply_filter,
    band_limit,
    linkwitz_riley_coefficients,
    linkwitz_riley_highpass,
    linkwitz_riley_lowpass,
)
from .engine import RainSynth, RenderReport, generate, synthesize, synthesize_raw
from .errors import InvalidConfigError, OutOfRangeError, RainSynthError
from .logging_utils import configure_logging as _configure_logging

__all__ = [
    "MAX_DURATION_SECONDS",
    "SAMPLE_RATE",
    "BufferStats",
    "EngineConfig",
    "FilterCoefficients",
    "InvalidConfigError",
    "OutOfRangeError",
    "RainSynth",
    "RainSynthError",
    "RenderReport",
    "apply_filter",
    "band_limit",
    "coerce_config",
    "describe_buffer",
    "generate",
    "linkwitz_riley_coefficients",
    "linkwitz_riley_highpass",
    "linkwitz_riley_lowpass",
    "parse_config",
    "synthesize",
    "synthesize_raw",
]

__version__ = "0.1.0"

_configure_logging()
del _configure_logging
