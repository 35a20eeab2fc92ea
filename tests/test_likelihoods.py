import math

import numpy as np
import pytest

from somaticfilter.dirichlet import Dirichlet
from somaticfilter.errors import ConvergenceFailure, DimensionMismatch
from somaticfilter.likelihoods import (
    allele_fractions_posterior,
    effective_counts,
    log10_evidence,
    log10_odds_correction,
)


def _random_likelihoods(rng: np.random.Generator, n_alleles: int, n_reads: int) -> np.ndarray:
    return -rng.exponential(2.0, size=(n_alleles, n_reads))


@pytest.mark.parametrize("seed", [0, 1, 2, 3])
def test_posterior_is_self_consistent(seed: int) -> None:
    rng = np.random.default_rng(seed)
    n_alleles = int(rng.integers(2, 5))
    mat = _random_likelihoods(rng, n_alleles, int(rng.integers(1, 60)))
    prior = Dirichlet(rng.uniform(0.5, 5.0, size=n_alleles))

    posterior = allele_fractions_posterior(mat, prior)
    refreshed = prior.add_counts(effective_counts(mat, posterior))
    assert refreshed.distance_l1(posterior) < 1e-2


def test_posterior_dimension_mismatch() -> None:
    with pytest.raises(DimensionMismatch):
        allele_fractions_posterior(np.zeros((3, 4)), Dirichlet.flat(2))


def test_posterior_convergence_failure_carries_estimate() -> None:
    mat = np.array([[0.0, 0.0, 0.0], [-3.0, -3.0, -3.0]])
    with pytest.raises(ConvergenceFailure) as excinfo:
        allele_fractions_posterior(mat, Dirichlet.flat(2), max_iterations=1)
    assert isinstance(excinfo.value.last_estimate, Dirichlet)
    assert excinfo.value.iterations == 1


def test_evidence_without_reads_is_zero() -> None:
    assert log10_evidence(np.zeros((2, 0))) == pytest.approx(0.0)


def test_evidence_of_one_decisive_read() -> None:
    # integral of f over a flat prior is 1/2
    mat = np.array([[0.0], [-10.0]])
    assert log10_evidence(mat) == pytest.approx(math.log10(0.5), abs=1e-3)


def test_evidence_of_many_decisive_reads() -> None:
    n = 20
    mat = np.vstack([np.zeros(n), np.full(n, -30.0)])
    assert log10_evidence(mat) == pytest.approx(-math.log10(n + 1), abs=1e-3)


def test_odds_correction_antisymmetric() -> None:
    a = Dirichlet.of(1000.0, 2333.0)
    b = Dirichlet.flat(2)
    counts = [30, 70]
    forward = log10_odds_correction(a, b, counts)
    assert forward == pytest.approx(-log10_odds_correction(b, a, counts))
    # a prior peaked at the observed allele fraction beats a flat one
    assert forward > 0


def test_odds_correction_of_identical_priors_is_zero() -> None:
    d = Dirichlet.of(3.0, 4.0)
    assert log10_odds_correction(d, d, [5, 5]) == 0.0


def test_odds_correction_dimension_checks() -> None:
    with pytest.raises(DimensionMismatch):
        log10_odds_correction(Dirichlet.flat(2), Dirichlet.flat(3), [1, 1])
    with pytest.raises(DimensionMismatch):
        log10_odds_correction(Dirichlet.flat(2), Dirichlet.flat(2), [1, 1, 1])
