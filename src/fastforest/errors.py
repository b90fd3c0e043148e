"""Exception hierarchy for forest training, prediction and model loading.

Every error raised here is fail-fast: fix the configuration or the input data
and rerun the whole operation. The classes also derive from the matching
built-in exception so callers catching ``ValueError`` / ``RuntimeError`` keep
working.
"""

from __future__ import annotations

from typing import Any


class ForestError(Exception):
    """Base class for all errors raised by :mod:`fastforest`."""


class ConfigurationError(ForestError, ValueError):
    """A configuration parameter or call argument has an invalid value.

    Parameters
    ----------
    param : str
        Name of the offending parameter.
    value : Any
        The rejected value.
    message : str, optional
        Extra detail appended to the standard message.
    """

    def __init__(self, param: str, value: Any, message: str | None = None):
        self.param = param
        self.value = value
        text = f"Invalid value for '{param}': {value!r}"
        if message:
            text = f"{text}. {message}"
        super().__init__(text)


class SchemaMismatchError(ForestError, ValueError):
    """A required column role is missing or has an unsupported type."""

    def __init__(self, role: str, message: str):
        self.role = role
        super().__init__(f"{role} column: {message}")


class ShapeMismatchError(ForestError, ValueError):
    """A feature vector does not have the length the model expects."""

    def __init__(self, expected: str, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Feature vector has length {actual}, expected {expected}"
        )


class IllegalStateError(ForestError, RuntimeError):
    """An operation was invoked before its preconditions were met."""


class VersionMismatchError(ForestError):
    """A persisted model cannot be read by this version of the library."""


class ModelFormatError(ForestError, ValueError):
    """A persisted model is truncated or structurally invalid."""
