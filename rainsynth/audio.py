from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Literal, TypeAlias

import numpy as np
from numpy.typing import NDArray

from .errors import InvalidConfigError

FloatArray: TypeAlias = NDArray[np.float64]
IntArray: TypeAlias = NDArray[np.int64]
BoolArray: TypeAlias = NDArray[np.bool_]
AudioNumbers = NDArray[np.floating[Any]] | Sequence[float]
SampleWidth = Literal[32, 64]

SAMPLE_RATE = 44_100

_WIDTH_DTYPES: dict[int, type[np.floating[Any]]] = {
    32: np.float32,
    64: np.float64,
}


def dtype_for_width(width: SampleWidth) -> np.dtype[np.floating[Any]]:
    """Map a sample width in bits to its numpy float dtype."""

    try:
        return np.dtype(_WIDTH_DTYPES[width])
    except KeyError as exc:
        raise InvalidConfigError(f"Unsupported sample width: {width!r}. Valid: 32, 64") from exc


def as_float64(audio: AudioNumbers) -> FloatArray:
    """Flatten samples into a contiguous float64 mono buffer."""

    mono: FloatArray = np.ascontiguousarray(audio, dtype=np.float64).reshape(-1)
    return mono


@dataclass(frozen=True, slots=True)
class BufferStats:
    samples: int
    peak: float
    rms: float
    finite: bool


def describe_buffer(audio: AudioNumbers) -> BufferStats:
    """Summarize a buffer: length, peak magnitude, RMS and finiteness."""

    mono = as_float64(audio)
    if mono.size == 0:
        return BufferStats(samples=0, peak=0.0, rms=0.0, finite=True)
    finite = bool(np.all(np.isfinite(mono)))
    peak = float(np.max(np.abs(mono)))
    rms = float(np.sqrt(np.mean(np.square(mono))))
    return BufferStats(samples=int(mono.size), peak=peak, rms=rms, finite=finite)
