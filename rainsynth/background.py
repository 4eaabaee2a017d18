"""
Background texture: a frequency-jittered sinusoid at the armed droplet's pitch
mixed with uniform noise, plus optional wind gusts that replace it.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np

from .audio import BoolArray, FloatArray, IntArray
from .config import EngineConfig

_LOGGER = logging.getLogger("rainsynth.background")

JITTER_FRACTION = 0.01
WIND_GAIN = 0.1
# A gust starts on roughly one arming instant in ten seconds' worth of samples.
GUST_ONSET_SECONDS = 10.0


def background_gain(config: EngineConfig) -> float:
    return config.background_intensity / config.combined_amplitude


def background_noise(
    rng: np.random.Generator,
    frequency: IntArray | FloatArray,
    start: int,
    sample_rate: float,
) -> FloatArray:
    """
    Unscaled background for ``frequency.size`` samples starting at index ``start``.

    Every sample draws its own sample-rate jitter in
    ``[-int(0.01 * sample_rate), +int(0.01 * sample_rate)]`` and its own
    uniform noise term, so the result lies in ``[-0.5, 1.0)``.
    """
    freq = np.asarray(frequency, dtype=np.float64)
    count = freq.size
    index = np.arange(start, start + count, dtype=np.float64)
    span = int(sample_rate * JITTER_FRACTION)
    jitter = rng.integers(-span, span, size=count, endpoint=True)
    noise = rng.random(count)
    phase = ((2 * np.pi * freq) / (sample_rate + jitter)) * index
    return np.sin(phase) * 0.5 + noise * 0.5


def gust_length(rate: float, sample_rate: float) -> int | None:
    """Samples a gust at ``rate`` Hz lasts; None when it never ends."""
    if rate <= 0:
        return None
    return max(1, math.ceil(sample_rate / rate))


@dataclass(slots=True)
class GustState:
    rate: float
    length: int | None
    elapsed: int = 0

    @property
    def remaining(self) -> int | None:
        if self.length is None:
            return None
        return self.length - self.elapsed


class GustTracker:
    """Starts wind gusts at droplet arming instants and renders them."""

    def __init__(self, config: EngineConfig, rng: np.random.Generator) -> None:
        self._sample_rate = config.sample_rate
        self._onset_probability = 1.0 / (GUST_ONSET_SECONDS * config.sample_rate)
        self._rng = rng
        self._gust: GustState | None = None
        self.gusts = 0

    @property
    def current(self) -> GustState | None:
        return self._gust

    def _render(self, gust: GustState, offset: int, mask: BoolArray, values: FloatArray) -> int:
        available = mask.size - offset
        remaining = gust.remaining
        span = available if remaining is None else min(remaining, available)
        j = np.arange(gust.elapsed, gust.elapsed + span, dtype=np.float64)
        swell = self._rng.random(span)
        sway = self._rng.random(span)
        values[offset : offset + span] = (
            swell + sway * np.sin(((2 * np.pi * gust.rate) / self._sample_rate) * j)
        ) * WIND_GAIN
        mask[offset : offset + span] = True
        gust.elapsed += span
        if gust.remaining == 0:
            self._gust = None
        return offset + span

    def advance(self, armed: BoolArray) -> tuple[BoolArray, FloatArray]:
        """Gust mask and gust samples for the next ``armed.size`` samples."""
        count = armed.size
        mask = np.zeros(count, dtype=np.bool_)
        values = np.zeros(count, dtype=np.float64)

        arm_points = np.flatnonzero(armed)
        onsets = self._rng.random(arm_points.size) < self._onset_probability
        rates = self._rng.random(arm_points.size)

        covered = 0
        if self._gust is not None:
            covered = self._render(self._gust, 0, mask, values)
        for hit in np.flatnonzero(onsets):
            index = int(arm_points[hit])
            if index < covered:
                continue
            rate = float(rates[hit])
            gust = GustState(rate=rate, length=gust_length(rate, self._sample_rate))
            _LOGGER.debug("Wind gust at %.3f Hz for %s samples", gust.rate, gust.length)
            self._gust = gust
            self.gusts += 1
            covered = self._render(gust, index, mask, values)
        return mask, values
