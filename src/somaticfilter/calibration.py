from __future__ import annotations

import logging
import math
from typing import Iterable

import numpy as np

from .errors import InvalidParameters
from .models import FilterStats

logger = logging.getLogger(__name__)

FILTER_NOTHING_THRESHOLD = 1.0
FILTER_EVERYTHING_THRESHOLD = 0.0

# Tolerance for comparing probabilities with thresholds.
EPSILON = 1e-10


def exceeds_threshold(probability: float, threshold: float) -> bool:
    """Decision rule applied against a frozen threshold.

    A probability equal to the threshold is filtered, and probabilities that
    are effectively zero never are.
    """
    return probability > EPSILON and probability > threshold - EPSILON


def calculate_filter_threshold(
    probabilities: Iterable[float],
    requested_fdr: float,
    filter_name: str,
) -> FilterStats:
    """Largest artifact-probability threshold whose expected FDR stays within bound.

    Probabilities are sorted ascending. Passing the first ``i + 1`` calls has
    expected FDR ``sum(p[:i + 1]) / (i + 1)``, which is non-decreasing in ``i``.
    The walk stops at the first ``i`` whose estimate exceeds ``requested_fdr``
    and returns ``p[i - 1]`` (0 when even the smallest probability violates
    the bound). If no prefix violates it, the threshold is 1.

    Parameters
    ----------
    probabilities:
        Artifact probabilities collected during the first pass.
    requested_fdr:
        Non-negative FDR bound.
    filter_name:
        Name recorded on the returned stats.
    """
    if not isinstance(requested_fdr, (int, float)) or math.isnan(requested_fdr) or requested_fdr < 0:
        raise InvalidParameters(
            f"requested FDR must be non-negative, got {requested_fdr}",
            {"filter_name": filter_name},
        )

    posteriors = np.sort(np.asarray(list(probabilities), dtype=float))
    if posteriors.size == 0:
        logger.debug("No probabilities for %s; filtering nothing", filter_name)
        return FilterStats(filter_name, FILTER_NOTHING_THRESHOLD, 0.0, 0, 0.0, requested_fdr)

    cumulative = np.cumsum(posteriors)
    expected_fdr = cumulative / np.arange(1, posteriors.size + 1)
    violations = np.flatnonzero(expected_fdr > requested_fdr)

    if violations.size == 0:
        fps = float(cumulative[-1])
        return FilterStats(
            filter_name,
            FILTER_NOTHING_THRESHOLD,
            fps,
            int(posteriors.size),
            fps / posteriors.size,
            requested_fdr,
        )

    i = int(violations[0])
    if i == 0:
        return FilterStats(filter_name, FILTER_EVERYTHING_THRESHOLD, 0.0, 0, 0.0, requested_fdr)

    fps = float(cumulative[i - 1])
    return FilterStats(filter_name, float(posteriors[i - 1]), fps, i, fps / i, requested_fdr)
