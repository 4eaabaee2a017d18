from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from datetime import timedelta
from typing import Any, Literal, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .audio import SAMPLE_RATE, SampleWidth, dtype_for_width
from .errors import InvalidConfigError

_LOGGER = logging.getLogger("rainsynth.config")

MAX_DURATION_SECONDS = 3600.0
DEFAULT_HIGH_PASS_CUTOFF = 250.0
DEFAULT_LOW_PASS_CUTOFF = 16_000.0

AcceptanceModel = Literal["intensity", "legacy"]


class EngineConfig(BaseModel):
    """Immutable parameters for one synthesis run.

    Field constraints reject out-of-range values at construction time; the
    cross-field rules (frequency ordering, sample count, filter cutoffs
    against Nyquist) live in ``_check_ranges``.
    """

    sample_rate: float = Field(default=float(SAMPLE_RATE), gt=0)
    duration: float = Field(default=10.0, ge=1.0, le=MAX_DURATION_SECONDS)
    rain_intensity: float = Field(default=0.1, gt=0.0, le=1.0)
    background_intensity: float = Field(default=0.35, ge=0.0)
    min_drop_freq: int = Field(default=3500, gt=0)
    max_drop_freq: int = Field(default=120_001, gt=0)
    max_oscillations_per_drop: int = Field(default=5, ge=2)

    sample_width: SampleWidth = 64
    wind: bool = False
    acceptance: AcceptanceModel = "intensity"
    high_pass_cutoff: float = Field(default=DEFAULT_HIGH_PASS_CUTOFF, ge=1.0)
    low_pass_cutoff: float = Field(default=DEFAULT_LOW_PASS_CUTOFF, ge=1.0)
    seed: int | None = Field(default=None, ge=0)

    model_config = ConfigDict(frozen=True, extra="forbid", allow_inf_nan=False)

    @field_validator("duration", mode="before")
    @classmethod
    def _duration_seconds(cls, value: object) -> object:
        if isinstance(value, timedelta):
            return value.total_seconds()
        return value

    @model_validator(mode="after")
    def _check_ranges(self) -> "EngineConfig":
        if self.min_drop_freq > self.max_drop_freq:
            raise ValueError(
                f"min_drop_freq ({self.min_drop_freq}) must be <= max_drop_freq "
                f"({self.max_drop_freq})"
            )
        if self.sample_count < 1:
            raise ValueError(
                "duration * sample_rate must yield at least one sample "
                f"(got {self.duration} * {self.sample_rate})"
            )
        if not 1.0 <= self.high_pass_cutoff < self.nyquist:
            raise ValueError(
                f"high_pass_cutoff must be in [1, sample_rate / 2) = [1, {self.nyquist:g}) "
                f"(got {self.high_pass_cutoff:g})"
            )
        if self.low_pass_cutoff <= self.high_pass_cutoff:
            raise ValueError(
                f"low_pass_cutoff ({self.low_pass_cutoff:g}) must be above "
                f"high_pass_cutoff ({self.high_pass_cutoff:g})"
            )
        return self

    @property
    def sample_count(self) -> int:
        return int(math.floor(self.duration * self.sample_rate))

    @property
    def combined_amplitude(self) -> float:
        return 1.0 + self.background_intensity

    @property
    def nyquist(self) -> float:
        return self.sample_rate / 2

    @property
    def dtype(self) -> np.dtype[Any]:
        return dtype_for_width(self.sample_width)


ConfigInput = Union[EngineConfig, Mapping[str, Any]]


def parse_config(payload: Mapping[str, Any]) -> EngineConfig:
    """Parse a config payload, raising InvalidConfigError on failure."""

    try:
        return EngineConfig.model_validate(dict(payload))
    except ValidationError as exc:
        _LOGGER.warning("Failed to parse engine config: %s", exc, exc_info=True)
        raise InvalidConfigError(str(exc)) from exc


def coerce_config(config: ConfigInput) -> EngineConfig:
    match config:
        case EngineConfig():
            return config
        case Mapping():
            return parse_config(config)
        case _:
            raise InvalidConfigError(f"Unsupported config type: {type(config).__name__}")
