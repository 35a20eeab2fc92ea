import math

import numpy as np
import pytest
from scipy import stats

from somaticfilter.clustering import AlleleFractionClusterer
from somaticfilter.errors import InvalidParameters
from somaticfilter.models import Count


def _counts(alt: np.ndarray, total: int) -> list:
    return [Count(int(a), int(total - a)) for a in alt]


def test_background_recovers_beta_shape() -> None:
    rng = np.random.default_rng(0)
    alt = stats.betabinom.rvs(100, 50, 50, size=5000, random_state=rng)
    # background-only fit; with signal seeds those take the central mass
    clusterer = AlleleFractionClusterer(_counts(alt, 100), num_clusters=0, num_iterations=10)

    assert len(clusterer.clusters) == 1
    shape = clusterer.background.shape
    assert abs(shape.alpha - 50) < 5
    assert abs(shape.beta - 50) < 5


def test_signal_cluster_tracks_allele_fraction() -> None:
    counts = [Count(30, 70)] * 200
    clusterer = AlleleFractionClusterer(counts, num_clusters=1)
    signal = [c for c in clusterer.clusters if not c.is_background]
    assert len(signal) == 1
    assert signal[0].shape.mean == pytest.approx(0.3, abs=0.01)
    assert clusterer.background.is_background
    assert clusterer.responsibilities.sum(axis=1) == pytest.approx(np.ones(200))


def test_distinct_seed_clusters() -> None:
    counts = [Count(10, 90)] * 50 + [Count(40, 60)] * 50
    clusterer = AlleleFractionClusterer(counts, num_clusters=20)
    means = sorted(c.shape.mean for c in clusterer.clusters if not c.is_background)
    # identical chunk means collapse to one seed each
    assert len(means) == 2
    assert means[0] == pytest.approx(0.1, abs=0.01)
    assert means[1] == pytest.approx(0.4, abs=0.01)


def test_odds_correction_favours_clustered_allele_fraction() -> None:
    clusterer = AlleleFractionClusterer([Count(30, 70)] * 200, num_clusters=1)
    assert clusterer.log10_odds_correction(30, 70) > 0
    assert clusterer.log10_odds_correction(95, 5) < clusterer.log10_odds_correction(30, 70)


def test_empty_data_uses_flat_background() -> None:
    clusterer = AlleleFractionClusterer([])
    assert len(clusterer.clusters) == 1
    assert clusterer.background.shape.alpha == 1.0
    assert clusterer.log10_odds_correction(5, 5) == pytest.approx(0.0)
    summary = clusterer.summary()
    assert summary["num_data"] == 0
    assert summary["clusters"][0]["background"] is True


def test_tolerance_allows_early_exit() -> None:
    counts = [Count(30, 70)] * 50
    clusterer = AlleleFractionClusterer(counts, num_clusters=1, num_iterations=10, tolerance=1e6)
    assert clusterer.iterations_run == 1


def test_mixture_log_likelihood_is_a_log_probability() -> None:
    clusterer = AlleleFractionClusterer([Count(30, 70)] * 100, num_clusters=1)
    value = clusterer.mixture_log_likelihood(Count(30, 70))
    assert math.isfinite(value)
    assert value < 0


def test_invalid_cluster_count() -> None:
    with pytest.raises(InvalidParameters):
        AlleleFractionClusterer([Count(1, 1)], num_clusters=-1)
