"""
Fourth-order Linkwitz-Riley filter sections.

Coefficients come from the analytic 4th-order prototype (a squared 2nd-order
Butterworth) mapped through the bilinear transform with cutoff pre-warping.
High-pass and low-pass share the feedback terms and differ only in the
numerator. Recursion runs through ``scipy.signal.lfilter`` in blocks, with the
four-sample history starting at zero for every pass.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

import numpy as np
from scipy.signal import freqz, lfilter  # type: ignore[import]

from .audio import AudioNumbers, FloatArray, as_float64
from .config import DEFAULT_HIGH_PASS_CUTOFF, DEFAULT_LOW_PASS_CUTOFF
from .errors import InvalidConfigError, OutOfRangeError

_LOGGER = logging.getLogger("rainsynth.crossover")

FilterKind = Literal["high", "low"]

FILTER_ORDER = 4
_BLOCK_SAMPLES = 1 << 18
_SQRT2 = math.sqrt(2.0)


@dataclass(frozen=True, slots=True)
class FilterCoefficients:
    """Feed-forward ``a0..a4`` and feedback ``b1..b4`` terms of one section."""

    kind: FilterKind
    cutoff: float
    sample_rate: float
    a0: float
    a1: float
    a2: float
    a3: float
    a4: float
    b1: float
    b2: float
    b3: float
    b4: float

    @property
    def feedforward(self) -> tuple[float, float, float, float, float]:
        return (self.a0, self.a1, self.a2, self.a3, self.a4)

    @property
    def feedback(self) -> tuple[float, float, float, float, float]:
        """Denominator in ``lfilter`` form, leading 1 included."""
        return (1.0, self.b1, self.b2, self.b3, self.b4)


def check_cutoff(cutoff: float, sample_rate: float) -> None:
    """Raise OutOfRangeError unless ``sample_rate > 0`` and ``1 <= cutoff < sample_rate / 2``."""

    if not math.isfinite(sample_rate) or sample_rate <= 0:
        raise OutOfRangeError("sample_rate", "(0, inf)", sample_rate)
    nyquist = sample_rate / 2
    if not math.isfinite(cutoff) or not 1.0 <= cutoff < nyquist:
        raise OutOfRangeError("cutoff", f"[1, {nyquist:g})", cutoff)


@lru_cache(maxsize=64)
def _coefficients_cached(kind: FilterKind, cutoff: float, sample_rate: float) -> FilterCoefficients:
    wc = 2 * math.pi * cutoff
    wc2 = wc * wc
    wc3 = wc2 * wc
    wc4 = wc2 * wc2
    k = wc / math.tan(math.pi * cutoff / sample_rate)
    k2 = k * k
    k3 = k2 * k
    k4 = k2 * k2
    sq_tmp1 = _SQRT2 * wc3 * k
    sq_tmp2 = _SQRT2 * wc * k3
    a_tmp = 4 * wc2 * k2 + 2 * sq_tmp1 + k4 + 2 * sq_tmp2 + wc4

    b1 = (4 * (wc4 + sq_tmp1 - k4 - sq_tmp2)) / a_tmp
    b2 = (6 * wc4 - 8 * wc2 * k2 + 6 * k4) / a_tmp
    b3 = (4 * (wc4 - sq_tmp1 + sq_tmp2 - k4)) / a_tmp
    b4 = (k4 - 2 * sq_tmp1 + wc4 - 2 * sq_tmp2 + 4 * wc2 * k2) / a_tmp

    if kind == "low":
        a0 = wc4 / a_tmp
        a1 = 4 * wc4 / a_tmp
        a2 = 6 * wc4 / a_tmp
    else:
        a0 = k4 / a_tmp
        a1 = -4 * k4 / a_tmp
        a2 = 6 * k4 / a_tmp

    return FilterCoefficients(
        kind=kind,
        cutoff=cutoff,
        sample_rate=sample_rate,
        a0=a0,
        a1=a1,
        a2=a2,
        a3=a1,
        a4=a0,
        b1=b1,
        b2=b2,
        b3=b3,
        b4=b4,
    )


def linkwitz_riley_coefficients(
    kind: FilterKind, cutoff: float, sample_rate: float
) -> FilterCoefficients:
    """Derive (or fetch from cache) the coefficients of one section."""
    if kind not in ("high", "low"):
        raise InvalidConfigError(f"Unknown filter kind: {kind!r}. Valid: 'high', 'low'")
    check_cutoff(cutoff, sample_rate)
    return _coefficients_cached(kind, float(cutoff), float(sample_rate))


def _require_samples(samples: AudioNumbers) -> FloatArray:
    signal = as_float64(samples)
    if signal.size == 0:
        raise InvalidConfigError("'samples' can not be empty")
    return signal


def apply_filter(
    samples: AudioNumbers,
    coefficients: FilterCoefficients,
    *,
    out: FloatArray | None = None,
) -> FloatArray:
    """
    Run the 4th-order recursion over ``samples``.

    y[i] = a0 x[i] + ... + a4 x[i-4] - b1 y[i-1] - ... - b4 y[i-4]

    Args:
        samples: Input buffer, must be non-empty.
        coefficients: Section coefficients.
        out: Optional float64 destination of the same length. May be the
             input buffer itself for in-place filtering.
    """
    signal = _require_samples(samples)
    if out is None:
        out = np.empty_like(signal)
    elif out.shape != signal.shape:
        raise InvalidConfigError(
            f"'out' has shape {out.shape}, expected {signal.shape} to match 'samples'"
        )

    b = np.asarray(coefficients.feedforward, dtype=np.float64)
    a = np.asarray(coefficients.feedback, dtype=np.float64)
    state = np.zeros(FILTER_ORDER, dtype=np.float64)
    for start in range(0, signal.size, _BLOCK_SAMPLES):
        stop = min(start + _BLOCK_SAMPLES, signal.size)
        block, state = lfilter(b, a, signal[start:stop], zi=state)
        out[start:stop] = block
    return out


def linkwitz_riley_highpass(
    samples: AudioNumbers, cutoff: float, sample_rate: float
) -> FloatArray:
    """Return a high-passed copy of ``samples``."""
    coefficients = linkwitz_riley_coefficients("high", cutoff, sample_rate)
    return apply_filter(samples, coefficients)


def linkwitz_riley_lowpass(
    samples: AudioNumbers, cutoff: float, sample_rate: float
) -> FloatArray:
    """Return a low-passed copy of ``samples``."""
    coefficients = linkwitz_riley_coefficients("low", cutoff, sample_rate)
    return apply_filter(samples, coefficients)


def band_limit(
    samples: AudioNumbers,
    sample_rate: float,
    high_pass_cutoff: float = DEFAULT_HIGH_PASS_CUTOFF,
    low_pass_cutoff: float = DEFAULT_LOW_PASS_CUTOFF,
    *,
    out: FloatArray | None = None,
) -> FloatArray:
    """
    High-pass then low-pass ``samples``.

    A low-pass cutoff at or above Nyquist removes nothing at this sample rate,
    so that stage is skipped instead of rejected.
    """
    signal = _require_samples(samples)
    high = linkwitz_riley_coefficients("high", high_pass_cutoff, sample_rate)
    result = apply_filter(signal, high, out=out)
    if low_pass_cutoff >= sample_rate / 2:
        _LOGGER.debug(
            "Skipping low-pass stage: cutoff %.1f Hz >= Nyquist %.1f Hz",
            low_pass_cutoff,
            sample_rate / 2,
        )
        return result
    low = linkwitz_riley_coefficients("low", low_pass_cutoff, sample_rate)
    return apply_filter(result, low, out=result)


def magnitude_response(
    coefficients: FilterCoefficients, frequencies: Sequence[float] | FloatArray
) -> FloatArray:
    """Linear magnitude of the section at the given frequencies (Hz)."""
    freqs = np.asarray(frequencies, dtype=np.float64)
    _, response = freqz(
        coefficients.feedforward,
        coefficients.feedback,
        worN=freqs,
        fs=coefficients.sample_rate,
    )
    return np.abs(response)
