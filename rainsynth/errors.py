from __future__ import annotations


class RainSynthError(Exception):
    """Base error for the rainsynth library."""


class InvalidConfigError(RainSynthError, ValueError):
    """Raised when a config cannot be parsed or validated."""


class OutOfRangeError(InvalidConfigError):
    """Raised when a numeric argument falls outside its valid range."""

    def __init__(self, parameter: str, valid_range: str, value: object = None) -> None:
        self.parameter = parameter
        self.valid_range = valid_range
        self.value = value
        message = f"{parameter!r} must be in {valid_range}"
        if value is not None:
            message = f"{message} (got {value!r})"
        super().__init__(message)
