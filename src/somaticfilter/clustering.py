"""Dirichlet-mixture clustering of allele fractions.

The generic :class:`DirichletClusterer` runs a fixed number of EM iterations
over a mixture whose occupancy weights carry a symmetric Dirichlet prior.
:class:`AlleleFractionClusterer` specializes it to (alt, ref) read counts with
Beta-binomial components: sharp "signal" clusters seeded from the observed
allele fractions plus one broad background cluster.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Sequence, Tuple, TypeVar

import numpy as np
from scipy import optimize, stats
from scipy.special import logsumexp

from .dirichlet import BetaShape, Dirichlet
from .errors import ConvergenceFailure, InvalidParameters
from .likelihoods import log10_odds_correction
from .models import Count
from .utils import clamp, log10sumlog10

logger = logging.getLogger(__name__)

C = TypeVar("C")
D = TypeVar("D")

DEFAULT_NUM_ITERATIONS = 10


class DirichletClusterer(ABC, Generic[C, D]):
    """EM fit of a mixture model with Dirichlet-distributed cluster weights.

    Subclasses provide cluster initialization, per-cluster log likelihoods and
    the M-step for a single cluster. Subclass state needed by
    :meth:`initialize_clusters` must be set before calling this constructor,
    which runs the fit.

    Parameters
    ----------
    data:
        Observed data points.
    concentration:
        Total concentration of the symmetric Dirichlet prior on cluster weights.
    num_iterations:
        Number of E-step/M-step rounds.
    tolerance:
        Stop early once :meth:`parameter_distance` between successive cluster
        lists drops below this value. Zero disables early exit.
    """

    def __init__(
        self,
        data: Sequence[D],
        concentration: float,
        *,
        num_iterations: int = DEFAULT_NUM_ITERATIONS,
        tolerance: float = 0.0,
    ) -> None:
        if num_iterations < 0:
            raise InvalidParameters(f"num_iterations must be >= 0, got {num_iterations}")
        if tolerance < 0:
            raise InvalidParameters(f"tolerance must be >= 0, got {tolerance}")

        self.data: List[D] = list(data)
        self.clusters: List[C] = list(self.initialize_clusters(self.data))
        if not self.clusters:
            raise InvalidParameters("initialize_clusters returned no clusters")
        self.weights_prior = Dirichlet.symmetric(len(self.clusters), concentration)
        self.responsibilities = np.zeros((len(self.data), len(self.clusters)))
        self.iterations_run = 0

        for _ in range(num_iterations):
            previous = list(self.clusters)
            self._relearn_responsibilities()
            self._relearn_clusters()
            self.iterations_run += 1
            if tolerance > 0 and self.parameter_distance(previous, self.clusters) < tolerance:
                logger.debug("Cluster parameters stable after %d iterations", self.iterations_run)
                break

    @abstractmethod
    def initialize_clusters(self, data: List[D]) -> List[C]:
        ...

    @abstractmethod
    def log_likelihoods(self, cluster: C, data: List[D]) -> np.ndarray:
        """Natural-log likelihood of every datum under ``cluster``."""

    @abstractmethod
    def relearn_cluster(self, current: C, data: List[D], responsibilities: np.ndarray) -> C:
        ...

    def parameter_distance(self, old: List[C], new: List[C]) -> float:
        return math.inf

    def weights_posterior(self) -> Dirichlet:
        return self.weights_prior.add_counts(self.responsibilities.sum(axis=0))

    def _log_likelihood_matrix(self, data: List[D]) -> np.ndarray:
        return np.column_stack([self.log_likelihoods(c, data) for c in self.clusters])

    def _relearn_responsibilities(self) -> None:
        if not self.data:
            return
        log_weights = self.weights_posterior().effective_log_weights()
        scores = self._log_likelihood_matrix(self.data) + log_weights[None, :]
        scores -= logsumexp(scores, axis=1, keepdims=True)
        self.responsibilities = np.exp(scores)

    def _relearn_clusters(self) -> None:
        self.clusters = [
            self.relearn_cluster(cluster, self.data, self.responsibilities[:, k])
            for k, cluster in enumerate(self.clusters)
        ]

    def mixture_log_likelihood(self, datum: D) -> float:
        """log sum_k w_k p_k(datum) with normalized effective weights."""
        log_weights = self.weights_posterior().effective_log_weights()
        log_weights = log_weights - logsumexp(log_weights)
        log_liks = self._log_likelihood_matrix([datum])[0]
        return float(logsumexp(log_weights + log_liks))


@dataclass(frozen=True)
class AFCluster:
    """A Beta-binomial component of the allele-fraction mixture."""

    is_background: bool
    shape: BetaShape

    def log_likelihoods(self, alt_counts: np.ndarray, totals: np.ndarray) -> np.ndarray:
        return stats.betabinom.logpmf(alt_counts, totals, self.shape.alpha, self.shape.beta)


class AlleleFractionClusterer(DirichletClusterer[AFCluster, Count]):
    """Allele-fraction mixture learned from calls that look like real somatic events.

    Parameters
    ----------
    counts:
        Alt/ref counts of the clustering data.
    concentration:
        Concentration of the Dirichlet prior on cluster occupancy.
    num_clusters:
        Number of allele-fraction chunks used to seed signal clusters. Zero
        fits the background cluster alone.
    """

    # Concentration of signal clusters, large enough to act like a binomial.
    SIGNAL_CONCENTRATION = 1000.0
    MIN_ALLELE_FRACTION = 1e-4
    BACKGROUND_ALPHA_BOUNDS = (1.0, 100.0)
    BISECTION_MAX_ITERATIONS = 2000

    def __init__(
        self,
        counts: Sequence[Count],
        concentration: float = 1.0,
        *,
        num_clusters: int = 20,
        num_iterations: int = DEFAULT_NUM_ITERATIONS,
        tolerance: float = 0.0,
    ) -> None:
        if num_clusters < 0:
            raise InvalidParameters(f"num_clusters must be >= 0, got {num_clusters}")
        self.num_clusters = num_clusters
        counts = list(counts)
        self._alt = np.array([c.alt_count for c in counts], dtype=float)
        self._total = np.array([c.total for c in counts], dtype=float)
        super().__init__(counts, concentration, num_iterations=num_iterations, tolerance=tolerance)
        logger.info(
            "Allele fraction clustering: %d data points, %d clusters, %d iterations",
            len(self.data),
            len(self.clusters),
            self.iterations_run,
        )

    def _arrays(self, data: List[Count]) -> Tuple[np.ndarray, np.ndarray]:
        if data is self.data:
            return self._alt, self._total
        return (
            np.array([c.alt_count for c in data], dtype=float),
            np.array([c.total for c in data], dtype=float),
        )

    def initialize_clusters(self, data: List[Count]) -> List[AFCluster]:
        clusters: List[AFCluster] = []
        if data and self.num_clusters > 0:
            sorted_afs = sorted(c.allele_fraction for c in data)
            chunk_size = max(len(sorted_afs) // self.num_clusters, 1)
            chunk_means = [
                float(np.mean(sorted_afs[i : i + chunk_size]))
                for i in range(0, len(sorted_afs), chunk_size)
            ]
            # distinct, in order of increasing allele fraction
            for af in dict.fromkeys(chunk_means):
                clusters.append(self._signal_cluster(af))
        clusters.append(AFCluster(True, BetaShape.flat()))
        return clusters

    def _signal_cluster(self, allele_fraction: float) -> AFCluster:
        f = clamp(allele_fraction, self.MIN_ALLELE_FRACTION, 1.0 - self.MIN_ALLELE_FRACTION)
        alpha = self.SIGNAL_CONCENTRATION
        return AFCluster(False, BetaShape(alpha, alpha * (1.0 - f) / f))

    def log_likelihoods(self, cluster: AFCluster, data: List[Count]) -> np.ndarray:
        alt, total = self._arrays(data)
        return cluster.log_likelihoods(alt, total)

    def relearn_cluster(self, current: AFCluster, data: List[Count], responsibilities: np.ndarray) -> AFCluster:
        alt, total = self._arrays(data)
        if current.is_background:
            try:
                return AFCluster(True, self.fit_background_shape(alt, total, responsibilities, current.shape))
            except ConvergenceFailure as e:
                logger.warning("%s; keeping %r", e, e.last_estimate)
                return AFCluster(True, e.last_estimate)

        weighted_alt = float(np.dot(responsibilities, alt))
        weighted_total = float(np.dot(responsibilities, total))
        if weighted_total <= 0:
            return current
        return self._signal_cluster(weighted_alt / weighted_total)

    @classmethod
    def fit_background_shape(
        cls,
        alt: np.ndarray,
        total: np.ndarray,
        responsibilities: np.ndarray,
        current: BetaShape,
    ) -> BetaShape:
        """Method-of-moments Beta-binomial fit.

        The mean comes from the weighted allele fraction; alpha solves the
        variance-matching equation by bisection on a bounded interval.
        """
        weighted_alt = float(np.dot(responsibilities, alt))
        weighted_total = float(np.dot(responsibilities, total))
        if weighted_total <= 0:
            return current

        weighted_ref = weighted_total - weighted_alt
        mean = (weighted_alt + 0.5) / (weighted_alt + weighted_ref + 1.0)
        lhs = float(np.dot(responsibilities, (alt - mean * total) ** 2)) / (mean * (1.0 - mean))

        def lhs_minus_rhs(a: float) -> float:
            s = a + a * (1.0 - mean) / mean
            return lhs - float(np.dot(responsibilities, total * (s + total))) / (s + 1.0)

        lo, hi = cls.BACKGROUND_ALPHA_BOUNDS
        f_lo, f_hi = lhs_minus_rhs(lo), lhs_minus_rhs(hi)
        if f_lo == 0.0:
            alpha = lo
        elif f_hi == 0.0:
            alpha = hi
        elif f_lo * f_hi > 0:
            # no root inside the bounds; take the endpoint nearest one
            alpha = lo if abs(f_lo) < abs(f_hi) else hi
        else:
            try:
                alpha = optimize.bisect(lhs_minus_rhs, lo, hi, maxiter=cls.BISECTION_MAX_ITERATIONS)
            except RuntimeError as e:
                raise ConvergenceFailure(
                    f"Background shape bisection failed: {e}",
                    last_estimate=current,
                    iterations=cls.BISECTION_MAX_ITERATIONS,
                ) from e

        return BetaShape(alpha, alpha * (1.0 - mean) / mean)

    def parameter_distance(self, old: List[AFCluster], new: List[AFCluster]) -> float:
        return max(
            abs(a.shape.alpha - b.shape.alpha) + abs(a.shape.beta - b.shape.beta)
            for a, b in zip(old, new)
        )

    @property
    def background(self) -> AFCluster:
        return self.clusters[-1]

    def log10_odds_correction(self, alt_count: float, ref_count: float) -> float:
        """Correction from a flat allele-fraction prior to the learned mixture.

        Averages the per-cluster corrections over signal clusters, weighted by
        their normalized effective occupancy; the background cluster is used
        when there are no signal clusters.
        """
        weights = self.weights_posterior().effective_weights()
        indices = [k for k, c in enumerate(self.clusters) if not c.is_background]
        if not indices:
            indices = [k for k, c in enumerate(self.clusters) if c.is_background]

        w = weights[indices]
        w = w / w.sum()
        flat = Dirichlet.flat(2)
        counts = [float(alt_count), float(ref_count)]
        corrections = [
            log10_odds_correction(self.clusters[k].shape.as_dirichlet(), flat, counts) for k in indices
        ]
        with np.errstate(divide="ignore"):
            return log10sumlog10(np.log10(w) + np.asarray(corrections))

    def summary(self) -> Dict[str, Any]:
        weights = self.weights_posterior().mean_weights()
        return {
            "num_data": len(self.data),
            "iterations": self.iterations_run,
            "clusters": [
                {
                    "background": c.is_background,
                    "alpha": c.shape.alpha,
                    "beta": c.shape.beta,
                    "mean": c.shape.mean,
                    "weight": float(w),
                }
                for c, w in zip(self.clusters, weights)
            ],
        }
