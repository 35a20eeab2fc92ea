"""Bayesian allele-fraction model over per-read allele likelihoods.

All likelihood matrices are log10-scaled with one row per allele and one
column per read. Allele fractions carry a Dirichlet prior; the posterior is
found by mean-field fixed-point iteration.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np

from .dirichlet import Dirichlet
from .errors import ConvergenceFailure, DimensionMismatch
from .utils import xlog10x

logger = logging.getLogger(__name__)

CONVERGENCE_THRESHOLD = 1e-3
DEFAULT_MAX_ITERATIONS = 1000


def _as_likelihood_matrix(log10_likelihoods: Sequence[Sequence[float]], prior: Dirichlet) -> np.ndarray:
    mat = np.asarray(log10_likelihoods, dtype=float)
    if mat.ndim != 2:
        raise DimensionMismatch(
            f"Likelihoods must be a 2-d alleles x reads matrix, got {mat.ndim} dimension(s)"
        )
    if mat.shape[0] != prior.dimension:
        raise DimensionMismatch(
            f"Must have one pseudocount per allele: {mat.shape[0]} alleles, "
            f"prior of dimension {prior.dimension}"
        )
    return mat


def _read_responsibilities(mat: np.ndarray, log10_weights: np.ndarray) -> np.ndarray:
    """Per-read categorical posteriors over alleles, one column per read."""
    if mat.shape[1] == 0:
        return np.zeros_like(mat)
    scores = mat + log10_weights[:, None]
    scores = scores - scores.max(axis=0, keepdims=True)
    linear = np.power(10.0, scores)
    return linear / linear.sum(axis=0, keepdims=True)


def effective_counts(log10_likelihoods: Sequence[Sequence[float]], dirichlet: Dirichlet) -> np.ndarray:
    """Sum over reads of each read's expected allele assignment under ``dirichlet``."""
    mat = _as_likelihood_matrix(log10_likelihoods, dirichlet)
    resp = _read_responsibilities(mat, dirichlet.effective_log10_weights())
    return resp.sum(axis=1)


def allele_fractions_posterior(
    log10_likelihoods: Sequence[Sequence[float]],
    prior: Dirichlet,
    *,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> Dirichlet:
    """Posterior Dirichlet over allele fractions given per-read likelihoods.

    Starting from a flat Dirichlet, repeatedly add the effective counts under
    the current posterior to the prior until successive posteriors are closer
    than :data:`CONVERGENCE_THRESHOLD` in L1 distance.

    Raises
    ------
    DimensionMismatch
        If the number of likelihood rows differs from the prior's dimension.
    ConvergenceFailure
        If ``max_iterations`` updates do not converge. The exception carries the
        last posterior as ``last_estimate``.
    """
    mat = _as_likelihood_matrix(log10_likelihoods, prior)
    posterior = Dirichlet.flat(prior.dimension)

    for _ in range(max_iterations):
        resp = _read_responsibilities(mat, posterior.effective_log10_weights())
        candidate = prior.add_counts(resp.sum(axis=1))
        converged = candidate.distance_l1(posterior) < CONVERGENCE_THRESHOLD
        posterior = candidate
        if converged:
            return posterior

    raise ConvergenceFailure(
        f"Allele fraction posterior did not converge in {max_iterations} iterations",
        last_estimate=posterior,
        iterations=max_iterations,
    )


def log10_evidence(
    log10_likelihoods: Sequence[Sequence[float]],
    prior: Optional[Dirichlet] = None,
    *,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> float:
    """Variational lower bound on the log10 marginal likelihood of the reads.

    A flat prior is used when ``prior`` is None. Non-convergence is logged and
    the last posterior estimate is used.
    """
    mat = np.asarray(log10_likelihoods, dtype=float)
    if prior is None:
        prior = Dirichlet.flat(mat.shape[0] if mat.ndim == 2 else 1)
    mat = _as_likelihood_matrix(mat, prior)

    try:
        posterior = allele_fractions_posterior(mat, prior, max_iterations=max_iterations)
    except ConvergenceFailure as e:
        logger.warning("%s; using the last estimate %r", e, e.last_estimate)
        posterior = e.last_estimate

    resp = _read_responsibilities(mat, posterior.effective_log10_weights())
    likelihood_term = float(np.sum(np.where(resp > 0, mat * resp, 0.0)))
    entropy_term = float(np.sum(xlog10x(resp)))
    return prior.log10_normalization() - posterior.log10_normalization() + likelihood_term - entropy_term


def log10_odds_correction(new_prior: Dirichlet, old_prior: Dirichlet, counts: Sequence[float]) -> float:
    """Additive change to a log10 odds when its allele-fraction prior is swapped.

    Converts log odds computed under ``old_prior`` into the value under
    ``new_prior`` for the same observed ``counts``.
    """
    counts_arr = np.asarray(counts, dtype=float).ravel()
    if new_prior.dimension != old_prior.dimension:
        raise DimensionMismatch(
            f"Priors must have the same dimension: {new_prior.dimension} != {old_prior.dimension}"
        )
    if counts_arr.size != new_prior.dimension:
        raise DimensionMismatch(
            f"Priors must have the same dimension as counts: {new_prior.dimension} != {counts_arr.size}"
        )

    old_value = old_prior.log10_normalization() - old_prior.add_counts(counts_arr).log10_normalization()
    new_value = new_prior.log10_normalization() - new_prior.add_counts(counts_arr).log10_normalization()
    return new_value - old_value
