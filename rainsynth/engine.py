"""
Rain synthesis.

1. Droplets: armed one after another, each sounding or not
2. Background: jittered hiss (or a wind gust) under every sample
3. Band limiting: Linkwitz-Riley high-pass then low-pass over the whole buffer
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray

from .audio import FloatArray
from .background import GustTracker, background_gain, background_noise
from .config import ConfigInput, EngineConfig, coerce_config
from .crossover import band_limit
from .droplets import DropletSequencer, apply_droplets
from .errors import InvalidConfigError
from .logging_utils import log_stage

_LOGGER = logging.getLogger("rainsynth.engine")

BLOCK_SAMPLES = 1 << 18


@dataclass(frozen=True, slots=True)
class RenderReport:
    samples: NDArray[np.floating[Any]]
    sample_rate: float
    droplets_armed: int
    droplets_sounded: int
    gusts: int

    def __len__(self) -> int:
        return int(self.samples.size)


def synthesize_raw(
    config: EngineConfig,
    rng: np.random.Generator,
    *,
    block_size: int = BLOCK_SAMPLES,
) -> RenderReport:
    """
    Run the droplet/background state machine without band limiting.

    Droplets, background noise and wind each draw from their own child stream
    of ``rng``, so the droplet schedule does not depend on ``block_size``.

    Args:
        config: Validated engine config.
        rng: Random stream; advanced by this call.
        block_size: Samples rendered per vectorized step.

    Returns:
        A report holding the raw float64 buffer of ``config.sample_count``
        samples and the droplet/gust counts.
    """
    if block_size < 1:
        raise InvalidConfigError(f"'block_size' must be at least 1 (got {block_size})")

    total = config.sample_count
    sr = config.sample_rate
    droplet_rng, noise_rng, wind_rng = rng.spawn(3)
    sequencer = DropletSequencer(config, droplet_rng)
    gusts = GustTracker(config, wind_rng) if config.wind else None
    gain = background_gain(config)

    raw: FloatArray = np.empty(total, dtype=np.float64)
    for start in range(0, total, block_size):
        stop = min(start + block_size, total)
        timeline = sequencer.advance(stop - start)
        layer = background_noise(noise_rng, timeline.frequency, start, sr) * gain
        if gusts is not None:
            windy, wind = gusts.advance(timeline.armed)
            layer = np.where(windy, wind, layer)
        raw[start:stop] = apply_droplets(timeline, layer, sr)

    return RenderReport(
        samples=raw,
        sample_rate=sr,
        droplets_armed=sequencer.armed,
        droplets_sounded=sequencer.sounded,
        gusts=0 if gusts is None else gusts.gusts,
    )


def synthesize(
    config: EngineConfig,
    rng: np.random.Generator,
    *,
    block_size: int = BLOCK_SAMPLES,
) -> RenderReport:
    """Synthesize, band-limit and convert to the configured sample width."""
    _LOGGER.debug(
        "Rendering %d samples at %.0f Hz (rain=%.3f, background=%.3f, wind=%s, width=%d)",
        config.sample_count,
        config.sample_rate,
        config.rain_intensity,
        config.background_intensity,
        config.wind,
        config.sample_width,
    )
    with log_stage(_LOGGER, "synthesis", samples=config.sample_count, block_size=block_size):
        raw = synthesize_raw(config, rng, block_size=block_size)
    with log_stage(
        _LOGGER,
        "band limiting",
        high_pass=config.high_pass_cutoff,
        low_pass=config.low_pass_cutoff,
    ):
        filtered = band_limit(
            raw.samples,
            config.sample_rate,
            config.high_pass_cutoff,
            config.low_pass_cutoff,
            out=raw.samples,
        )
    samples = filtered.astype(config.dtype, copy=False)
    _LOGGER.debug(
        "Rendered %d samples: %d/%d droplets sounded, %d gusts",
        samples.size,
        raw.droplets_sounded,
        raw.droplets_armed,
        raw.gusts,
    )
    return RenderReport(
        samples=samples,
        sample_rate=raw.sample_rate,
        droplets_armed=raw.droplets_armed,
        droplets_sounded=raw.droplets_sounded,
        gusts=raw.gusts,
    )


class RainSynth:
    """Rain generator.

    Built with ``rng`` or ``seed``, the instance owns one stream and
    successive renders continue it, so two renders from the same instance
    differ while two instances seeded alike render identical buffers. Built
    with neither, every render starts a fresh ``default_rng(config.seed)``.
    """

    def __init__(self, rng: np.random.Generator | None = None, *, seed: int | None = None) -> None:
        if rng is not None and seed is not None:
            raise InvalidConfigError("Pass either 'rng' or 'seed', not both")
        if rng is None and seed is not None:
            rng = np.random.default_rng(seed)
        self._rng = rng

    @property
    def rng(self) -> np.random.Generator | None:
        """The owned stream, or None when renders follow ``config.seed``."""
        return self._rng

    def render(self, config: ConfigInput) -> RenderReport:
        engine_config = coerce_config(config)
        rng = self._rng if self._rng is not None else np.random.default_rng(engine_config.seed)
        return synthesize(engine_config, rng)

    def generate(self, config: ConfigInput) -> NDArray[np.floating[Any]]:
        return self.render(config).samples


def generate(
    config: ConfigInput,
    *,
    rng: np.random.Generator | None = None,
) -> NDArray[np.floating[Any]]:
    """
    Render a band-limited rain buffer of ``floor(duration * sample_rate)`` samples.

    Args:
        config: EngineConfig or a mapping of its fields.
        rng: Optional random stream. Defaults to ``default_rng(config.seed)``.
    """
    return RainSynth(rng).generate(config)
