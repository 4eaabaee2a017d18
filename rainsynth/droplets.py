"""
Droplet events.

A droplet is armed at stream start and again on the sample after the previous
one retires. Each armed droplet draws a frequency, an oscillation count and an
amplitude, then a Bernoulli draw decides whether it sounds. A droplet that does
not sound occupies a single sample; one that sounds occupies
``floor(total_duration) + 1`` samples and is shaped by ``t * (1 - t)`` with
``t = elapsed / total_duration``.

Droplets are drawn in columnar batches and laid out over blocks of samples by
``DropletSequencer``; a droplet cut by a block boundary is carried into the
next block as a ``DropletState``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from .audio import BoolArray, FloatArray, IntArray
from .config import EngineConfig
from .errors import InvalidConfigError


DROPLET_GAIN = 4.0
_BATCH_DROPLETS = 1 << 16


@dataclass(frozen=True, slots=True)
class DropletBatch:
    frequency: IntArray
    samples_per_oscillation: FloatArray
    total_duration: FloatArray
    amplitude: FloatArray
    accepted: BoolArray

    def __len__(self) -> int:
        return int(self.frequency.size)

    @property
    def lengths(self) -> IntArray:
        """Samples each droplet occupies before the next one is armed."""
        sounding = np.floor(self.total_duration).astype(np.int64) + 1
        return np.where(self.accepted, sounding, 1).astype(np.int64)


@dataclass(slots=True)
class DropletState:
    """A droplet that is still in flight at a block boundary."""

    frequency: int
    total_duration: float
    amplitude: float
    accepted: bool
    length: int
    elapsed: int = 0

    @property
    def active(self) -> bool:
        return self.accepted and self.elapsed < self.length

    @property
    def remaining(self) -> int:
        return self.length - self.elapsed


@dataclass(frozen=True, slots=True)
class DropletTimeline:
    """Per-sample view of the droplets covering one block."""

    start: int
    frequency: IntArray
    total_duration: FloatArray
    amplitude: FloatArray
    accepted: BoolArray
    elapsed: IntArray

    def __len__(self) -> int:
        return int(self.frequency.size)

    @property
    def armed(self) -> BoolArray:
        return self.elapsed == 0

    @property
    def envelope(self) -> FloatArray:
        return np.where(self.accepted, parabolic_envelope(self.elapsed, self.total_duration), 1.0)


def parabolic_envelope(elapsed: IntArray, total_duration: FloatArray | float) -> FloatArray:
    """``t * (1 - t)`` with ``t = elapsed / total_duration``."""
    t = elapsed / total_duration
    return t * (1.0 - t)


def acceptance_probability(config: EngineConfig, total_duration: FloatArray) -> FloatArray:
    """Chance that each armed droplet sounds.

    The "intensity" model weighs the rain intensity against the droplet's own
    repetition rate, which reduces to the intensity itself. The "legacy" model
    ties the chance to the absolute sample rate instead.
    """
    if config.acceptance == "legacy":
        legacy = 1.0 / (config.sample_rate * config.rain_intensity)
        return np.full(np.shape(total_duration), legacy, dtype=np.float64)
    max_drops_per_second = config.sample_rate / total_duration
    return (max_drops_per_second * config.rain_intensity) / max_drops_per_second


def draw_droplets(rng: np.random.Generator, config: EngineConfig, count: int) -> DropletBatch:
    """Arm ``count`` droplets in one vectorized draw."""
    if count < 1:
        raise InvalidConfigError(f"'count' must be at least 1 (got {count})")
    # integers() needs high > low; a single-frequency range always yields min_drop_freq.
    high = max(config.max_drop_freq, config.min_drop_freq + 1)
    frequency = rng.integers(config.min_drop_freq, high, size=count, dtype=np.int64)
    samples_per_oscillation = config.sample_rate / frequency
    oscillations = rng.integers(1, config.max_oscillations_per_drop, size=count, dtype=np.int64)
    total_duration = oscillations * samples_per_oscillation
    accepted = rng.random(count) < acceptance_probability(config, total_duration)
    amplitude = rng.random(count) / config.combined_amplitude
    return DropletBatch(
        frequency=frequency,
        samples_per_oscillation=samples_per_oscillation,
        total_duration=total_duration,
        amplitude=amplitude,
        accepted=accepted,
    )


def droplet_envelope(total_duration: float) -> FloatArray:
    """Envelope over the active window of a sounding droplet."""
    if not math.isfinite(total_duration) or total_duration <= 0:
        raise InvalidConfigError(f"'total_duration' must be positive (got {total_duration})")
    elapsed = np.arange(int(math.floor(total_duration)) + 1, dtype=np.int64)
    return parabolic_envelope(elapsed, total_duration)


def apply_droplets(timeline: DropletTimeline, layer: FloatArray, sample_rate: float) -> FloatArray:
    """Add sounding droplets to ``layer`` and scale those samples by the envelope."""
    if layer.shape != timeline.frequency.shape:
        raise InvalidConfigError(
            f"layer has shape {layer.shape}, expected {timeline.frequency.shape}"
        )
    index = np.arange(timeline.start, timeline.start + len(timeline), dtype=np.float64)
    tone = timeline.amplitude * np.sin(((2 * np.pi * timeline.frequency) / sample_rate) * index)
    shaped = (layer + tone * DROPLET_GAIN) * timeline.envelope
    return np.where(timeline.accepted, shaped, layer)


class DropletSequencer:
    """Lays armed droplets end to end over consecutive blocks of samples."""

    def __init__(
        self,
        config: EngineConfig,
        rng: np.random.Generator,
        *,
        batch_size: int = _BATCH_DROPLETS,
    ) -> None:
        if batch_size < 1:
            raise InvalidConfigError(f"'batch_size' must be at least 1 (got {batch_size})")
        self._config = config
        self._rng = rng
        self._batch_size = batch_size
        self._batch: DropletBatch | None = None
        self._lengths: IntArray = np.zeros(0, dtype=np.int64)
        self._cursor = 0
        self._carry: DropletState | None = None
        self._position = 0
        self.armed = 0
        self.sounded = 0

    @property
    def position(self) -> int:
        """Absolute index of the next sample to be laid out."""
        return self._position

    @property
    def in_flight(self) -> DropletState | None:
        return self._carry

    def _refill(self) -> DropletBatch:
        batch = draw_droplets(self._rng, self._config, self._batch_size)
        self._batch = batch
        self._lengths = batch.lengths
        self._cursor = 0
        return batch

    def advance(self, count: int) -> DropletTimeline:
        """Lay out droplets over the next ``count`` samples."""
        if count < 1:
            raise InvalidConfigError(f"'count' must be at least 1 (got {count})")

        frequency: list[IntArray] = []
        total_duration: list[FloatArray] = []
        amplitude: list[FloatArray] = []
        accepted: list[BoolArray] = []
        first_elapsed: list[IntArray] = []
        spans: list[IntArray] = []
        filled = 0

        carry = self._carry
        if carry is not None:
            span = min(carry.remaining, count)
            frequency.append(np.array([carry.frequency], dtype=np.int64))
            total_duration.append(np.array([carry.total_duration], dtype=np.float64))
            amplitude.append(np.array([carry.amplitude], dtype=np.float64))
            accepted.append(np.array([carry.accepted], dtype=np.bool_))
            first_elapsed.append(np.array([carry.elapsed], dtype=np.int64))
            spans.append(np.array([span], dtype=np.int64))
            carry.elapsed += span
            self._carry = carry if carry.remaining > 0 else None
            filled = span

        while filled < count:
            batch = self._batch
            if batch is None or self._cursor >= len(batch):
                batch = self._refill()
            lengths = self._lengths[self._cursor :]
            ends = filled + np.cumsum(lengths)
            last = int(np.searchsorted(ends, count))
            take = min(last + 1, lengths.size)
            taken = slice(self._cursor, self._cursor + take)
            block_spans = lengths[:take].copy()

            overshoot = int(ends[take - 1]) - count
            if overshoot > 0:
                # The last droplet runs past the block; carry its remainder.
                block_spans[-1] -= overshoot
                tail = self._cursor + take - 1
                self._carry = DropletState(
                    frequency=int(batch.frequency[tail]),
                    total_duration=float(batch.total_duration[tail]),
                    amplitude=float(batch.amplitude[tail]),
                    accepted=bool(batch.accepted[tail]),
                    length=int(self._lengths[tail]),
                    elapsed=int(block_spans[-1]),
                )

            frequency.append(batch.frequency[taken])
            total_duration.append(batch.total_duration[taken])
            amplitude.append(batch.amplitude[taken])
            accepted.append(batch.accepted[taken])
            first_elapsed.append(np.zeros(take, dtype=np.int64))
            spans.append(block_spans)

            self.armed += take
            self.sounded += int(np.count_nonzero(batch.accepted[taken]))
            self._cursor += take
            filled = min(int(ends[take - 1]), count)

        span_array = np.concatenate(spans)
        segment = np.repeat(np.arange(span_array.size), span_array)
        segment_start = np.cumsum(span_array) - span_array
        elapsed = (
            np.arange(count, dtype=np.int64)
            - segment_start[segment]
            + np.concatenate(first_elapsed)[segment]
        )

        timeline = DropletTimeline(
            start=self._position,
            frequency=np.concatenate(frequency)[segment],
            total_duration=np.concatenate(total_duration)[segment],
            amplitude=np.concatenate(amplitude)[segment],
            accepted=np.concatenate(accepted)[segment],
            elapsed=elapsed,
        )
        self._position += count
        return timeline
