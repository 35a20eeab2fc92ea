import math

import numpy as np
import pytest
from hypothesis import given, strategies as st
from scipy import stats
from scipy.special import digamma

from somaticfilter.dirichlet import BetaShape, Dirichlet
from somaticfilter.errors import DimensionMismatch, InvalidParameters


@pytest.mark.parametrize(
    "alpha",
    [[], [1.0, -0.5], [1.0, math.inf], [1.0, math.nan], [0.0, 0.0]],
)
def test_invalid_parameters_rejected(alpha) -> None:
    with pytest.raises(InvalidParameters):
        Dirichlet(alpha)


def test_zero_entries_allowed_when_one_is_positive() -> None:
    d = Dirichlet.of(0.0, 2.0)
    assert d.dimension == 2
    assert d.mean_weights().tolist() == [0.0, 1.0]


@given(st.lists(st.floats(min_value=0.01, max_value=1e4), min_size=1, max_size=20))
def test_adding_zero_counts_is_identity(alpha) -> None:
    d = Dirichlet(alpha)
    assert d.add_counts(np.zeros(len(alpha))).distance_l1(d) == 0.0


def test_add_counts_returns_new_object() -> None:
    d = Dirichlet.of(1.0, 2.0)
    d2 = d.add_counts([3, 4])
    assert d.alpha.tolist() == [1.0, 2.0]
    assert d2.alpha.tolist() == [4.0, 6.0]
    with pytest.raises(ValueError):
        d.alpha[0] = 5.0


def test_dimension_mismatch() -> None:
    d = Dirichlet.of(1.0, 2.0)
    with pytest.raises(DimensionMismatch):
        d.add_counts([1.0, 2.0, 3.0])
    with pytest.raises(DimensionMismatch):
        d.distance_l1(Dirichlet.flat(3))


@pytest.mark.parametrize("a,b", [(1.0, 1.0), (2.5, 7.0), (50.0, 50.0), (1000.0, 3.0)])
def test_log_normalization_matches_beta_density(a: float, b: float) -> None:
    d = Dirichlet.of(a, b)
    x = 0.37
    log_pdf = d.log_normalization() + (a - 1) * math.log(x) + (b - 1) * math.log(1 - x)
    assert log_pdf == pytest.approx(stats.beta.logpdf(x, a, b), rel=1e-7, abs=1e-7)
    assert d.log10_normalization() == pytest.approx(d.log_normalization() / math.log(10))


def test_effective_weights() -> None:
    d = Dirichlet.flat(2)
    expected = digamma(1.0) - digamma(2.0)
    assert d.effective_log_weights() == pytest.approx([expected, expected])
    assert d.effective_weights() == pytest.approx([math.exp(-1.0), math.exp(-1.0)])
    # effective weights are not normalized
    assert d.effective_weights().sum() < 1.0


def test_symmetric_sums_to_concentration() -> None:
    d = Dirichlet.symmetric(4, 2.0)
    assert d.alpha.tolist() == [0.5, 0.5, 0.5, 0.5]
    assert d == Dirichlet.of(0.5, 0.5, 0.5, 0.5)


def test_beta_shape() -> None:
    shape = BetaShape(2.0, 6.0)
    assert shape.mean == pytest.approx(0.25)
    assert shape.as_dirichlet() == Dirichlet.of(2.0, 6.0)
    assert BetaShape.flat() == BetaShape(1.0, 1.0)
    with pytest.raises(InvalidParameters):
        BetaShape(0.0, 1.0)
