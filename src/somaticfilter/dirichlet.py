from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np
from scipy.special import digamma, gammaln

from .errors import DimensionMismatch, InvalidParameters
from .utils import LOG10_E


class Dirichlet:
    """Dirichlet distribution over the weights of a categorical variable.

    Parameters
    ----------
    alpha:
        Concentration parameters. Every entry must be finite and non-negative
        and at least one must be positive.

    Instances are immutable: :meth:`add_counts` returns a new object.
    """

    __slots__ = ("_alpha",)

    def __init__(self, alpha: Sequence[float]) -> None:
        arr = np.array(alpha, dtype=float).ravel()
        if arr.size == 0:
            raise InvalidParameters("Dirichlet needs at least one concentration parameter")
        if not np.all(np.isfinite(arr)):
            raise InvalidParameters(
                "Dirichlet parameters must be finite", {"alpha": arr.tolist()}
            )
        if np.any(arr < 0):
            raise InvalidParameters(
                "Dirichlet parameters must be non-negative", {"alpha": arr.tolist()}
            )
        if not np.any(arr > 0):
            raise InvalidParameters("Dirichlet parameters cannot all be zero", {"alpha": arr.tolist()})
        arr.setflags(write=False)
        self._alpha = arr

    @classmethod
    def of(cls, *alpha: float) -> "Dirichlet":
        return cls(alpha)

    @classmethod
    def flat(cls, dimension: int) -> "Dirichlet":
        """The uniform Dirichlet, all concentrations equal to one."""
        if dimension < 1:
            raise InvalidParameters(f"Dirichlet dimension must be >= 1, got {dimension}")
        return cls(np.ones(dimension))

    @classmethod
    def symmetric(cls, num_states: int, concentration: float) -> "Dirichlet":
        """Symmetric Dirichlet whose parameters sum to ``concentration``."""
        if num_states < 1:
            raise InvalidParameters(f"Dirichlet dimension must be >= 1, got {num_states}")
        return cls(np.full(num_states, concentration / num_states))

    @property
    def alpha(self) -> np.ndarray:
        return self._alpha

    @property
    def dimension(self) -> int:
        return int(self._alpha.size)

    def add_counts(self, counts: Sequence[float]) -> "Dirichlet":
        arr = np.asarray(counts, dtype=float).ravel()
        if arr.size != self.dimension:
            raise DimensionMismatch(
                f"Cannot add {arr.size} counts to a Dirichlet of dimension {self.dimension}"
            )
        return Dirichlet(self._alpha + arr)

    def effective_log_weights(self) -> np.ndarray:
        """Expected log weights, psi(alpha_i) - psi(sum alpha).

        These do not sum to one in linear space.
        """
        return digamma(self._alpha) - digamma(self._alpha.sum())

    def effective_log10_weights(self) -> np.ndarray:
        return self.effective_log_weights() * LOG10_E

    def effective_weights(self) -> np.ndarray:
        return np.exp(self.effective_log_weights())

    def mean_weights(self) -> np.ndarray:
        return self._alpha / self._alpha.sum()

    def log_normalization(self) -> float:
        """log Gamma(sum alpha) - sum log Gamma(alpha_i)."""
        return float(gammaln(self._alpha.sum()) - np.sum(gammaln(self._alpha)))

    def log10_normalization(self) -> float:
        return self.log_normalization() * LOG10_E

    def distance_l1(self, other: "Dirichlet") -> float:
        if other.dimension != self.dimension:
            raise DimensionMismatch(
                f"Cannot compare Dirichlets of dimension {self.dimension} and {other.dimension}"
            )
        return float(np.abs(self._alpha - other._alpha).sum())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Dirichlet):
            return NotImplemented
        return bool(np.array_equal(self._alpha, other._alpha))

    def __hash__(self) -> int:
        return hash(tuple(self._alpha.tolist()))

    def __repr__(self) -> str:
        inner = ", ".join(f"{a:g}" for a in self._alpha)
        return f"{type(self).__name__}({inner})"


@dataclass(frozen=True)
class BetaShape:
    """Shape parameters of a Beta distribution, a two-dimensional Dirichlet."""

    alpha: float
    beta: float

    def __post_init__(self) -> None:
        if not (math.isfinite(self.alpha) and math.isfinite(self.beta)):
            raise InvalidParameters(
                "Beta shape parameters must be finite", {"alpha": self.alpha, "beta": self.beta}
            )
        if self.alpha <= 0 or self.beta <= 0:
            raise InvalidParameters(
                "Beta shape parameters must be positive", {"alpha": self.alpha, "beta": self.beta}
            )

    @classmethod
    def flat(cls) -> "BetaShape":
        return cls(1.0, 1.0)

    @property
    def mean(self) -> float:
        return self.alpha / (self.alpha + self.beta)

    def as_dirichlet(self) -> Dirichlet:
        return Dirichlet([self.alpha, self.beta])
