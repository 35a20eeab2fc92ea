"""Exception types raised by the filtering engine.

Every error derives from :class:`SomaticFilterError` and from the builtin
exception a caller would naturally catch (``ValueError`` for bad input,
``RuntimeError`` for failed computations or misuse).
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SomaticFilterError(Exception):
    """Base exception for somaticfilter errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.details = details or {}


class InvalidParameters(SomaticFilterError, ValueError):
    """Raised when distribution parameters or configuration values are malformed."""


class DimensionMismatch(SomaticFilterError, ValueError):
    """Raised when vectors that must line up (prior, likelihoods, counts) do not."""


class ConvergenceFailure(SomaticFilterError, RuntimeError):
    """Raised when an iterative fit exceeds its safety iteration bound.

    ``last_estimate`` holds the best value reached so callers can downgrade the
    failure to a warning.
    """

    def __init__(
        self,
        message: str,
        *,
        last_estimate: Any = None,
        iterations: int = 0,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)
        self.last_estimate = last_estimate
        self.iterations = int(iterations)


class MissingAnnotation(SomaticFilterError, KeyError):
    """Raised when a record lacks a required attribute."""

    def __init__(self, key: str, *, where: str = "record") -> None:
        super().__init__(f"Missing annotation {key!r} on {where}", {"key": key, "where": where})
        self.key = key

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message instead.
        return str(self.args[0])


class InvalidState(SomaticFilterError, RuntimeError):
    """Raised when the two-pass engine is driven out of sequence."""
