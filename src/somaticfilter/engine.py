"""Two-pass filtering engine.

The first pass scores every record with every filter and accumulates the
probabilities. At the pass boundary the false discovery rate calibration is
run once, the allele-fraction model is fit and a second-pass context is
built. The second pass rescores each record against the frozen threshold and
emits a :class:`~somaticfilter.models.Decision`.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

import numpy as np
from tqdm import tqdm

from . import keys
from .calibration import calculate_filter_threshold, exceeds_threshold
from .clustering import AlleleFractionClusterer
from .config import FilteringConfig
from .context import FilteringContext
from .errors import InvalidState
from .filters import EVIDENCE_FILTERS, FilterKind, artifact_probability, default_filters
from .models import Count, Decision, FilterStats, PhasedCall, VariantRecord
from .utils import error_prob_to_phred, max_index

logger = logging.getLogger(__name__)

COMBINED_FILTER_NAME = "combined"


class EngineState(Enum):
    UNINITIALIZED = "uninitialized"
    ACCUMULATING = "accumulating"
    CALIBRATED = "calibrated"
    EMITTING = "emitting"
    DONE = "done"


@dataclass
class FilteringStatistics:
    """First-pass accumulator.

    Attributes
    ----------
    probabilities:
        Artifact probabilities per filter name, in record order.
    max_probabilities:
        Per-record maximum over all filters.
    clustering_counts:
        Tumor (alt, ref) counts of records whose artifact filters all stay
        below the provisional threshold.
    phased_calls:
        Latest provisionally filtered call per phase set id.
    """

    filter_names: Tuple[str, ...]
    probabilities: Dict[str, List[float]] = field(default_factory=dict)
    max_probabilities: List[float] = field(default_factory=list)
    clustering_counts: List[Count] = field(default_factory=list)
    phased_calls: Dict[str, PhasedCall] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in self.filter_names:
            self.probabilities.setdefault(name, [])

    @property
    def num_records(self) -> int:
        return len(self.max_probabilities)

    def add(
        self,
        record: VariantRecord,
        probabilities: Mapping[FilterKind, float],
        *,
        normal_samples: Iterable[str],
        first_pass_threshold: float,
    ) -> None:
        normals = frozenset(normal_samples)
        for kind, p in probabilities.items():
            self.probabilities[kind.filter_name].append(p)
        max_probability = max(probabilities.values(), default=0.0)
        self.max_probabilities.append(max_probability)

        if exceeds_threshold(max_probability, first_pass_threshold):
            self._record_filtered_haplotypes(record, normals)

        artifact_like = any(
            exceeds_threshold(p, first_pass_threshold)
            for kind, p in probabilities.items()
            if kind not in EVIDENCE_FILTERS
        )
        if not artifact_like:
            count = _tumor_count(record, normals)
            if count is not None:
                self.clustering_counts.append(count)

    def _record_filtered_haplotypes(self, record: VariantRecord, normals: frozenset) -> None:
        genotypes_by_phase_id: Dict[str, Set[str]] = {}
        for s in record.tumor_samples(normals):
            if not (s.has_attribute(keys.PHASING_GT) and s.has_attribute(keys.PHASING_ID)):
                continue
            genotypes_by_phase_id.setdefault(s.get_string(keys.PHASING_ID), set()).add(
                s.get_string(keys.PHASING_GT)
            )
        for pid, genotypes in genotypes_by_phase_id.items():
            self.phased_calls[pid] = PhasedCall(record.position, frozenset(genotypes))


def _tumor_count(record: VariantRecord, normals: frozenset) -> Optional[Count]:
    """Summed tumor counts of the allele with the greatest tumor log odds."""
    if not record.has_attribute(keys.TUMOR_LOD):
        return None
    try:
        idx = max_index(record.get_float_list(keys.TUMOR_LOD))
        ad = record.sum_allele_depths(normals)
        return Count(ad[idx + 1], ad[0])
    except (LookupError, ValueError) as e:
        logger.debug("No clustering count for %s: %s", record.label, e)
        return None


class TwoPassFilter:
    """Streaming accumulate-then-apply filter.

    States advance ``UNINITIALIZED -> ACCUMULATING -> CALIBRATED -> EMITTING
    -> DONE``; any call out of sequence raises :class:`InvalidState`.

    Parameters
    ----------
    config:
        Filtering configuration.
    context:
        First-pass context. Defaults to an empty context built from ``config``.
    filters:
        Filter set, in output order. Defaults to :func:`default_filters`.
    """

    def __init__(
        self,
        config: FilteringConfig,
        context: Optional[FilteringContext] = None,
        *,
        filters: Optional[Sequence[FilterKind]] = None,
    ) -> None:
        self.config = config
        self.context = context if context is not None else FilteringContext.create(config)
        if self.context.is_second_pass:
            raise InvalidState("Engine must start from a first-pass context")
        self.filters: Tuple[FilterKind, ...] = tuple(filters) if filters is not None else default_filters(config)
        self.state = EngineState.UNINITIALIZED

        self.statistics = FilteringStatistics(tuple(k.filter_name for k in self.filters))
        self.filter_stats: Dict[str, FilterStats] = {}
        self.combined_stats: Optional[FilterStats] = None
        self.clusterer: Optional[AlleleFractionClusterer] = None

        self._degraded: Dict[str, int] = {}
        self._expected_false_positives: Dict[str, float] = {k.filter_name: 0.0 for k in self.filters}
        self._num_passing = 0
        self._num_emitted = 0

    def _require(self, *states: EngineState) -> None:
        if self.state not in states:
            expected = " or ".join(s.name for s in states)
            raise InvalidState(
                f"Operation requires state {expected}, engine is {self.state.name}",
                {"state": self.state.name},
            )

    def _on_filter_error(self, kind: FilterKind, err: Exception) -> None:
        self._degraded[kind.filter_name] = self._degraded.get(kind.filter_name, 0) + 1

    def _log_degraded(self, which: str) -> None:
        total = sum(self._degraded.values())
        if total:
            logger.warning(
                "%s: %d filter evaluations failed and scored 0 (%s)",
                which,
                total,
                ", ".join(f"{k}={v}" for k, v in sorted(self._degraded.items())),
            )
        self._degraded = {}

    def _score(self, record: VariantRecord, context: FilteringContext) -> Dict[FilterKind, float]:
        return {
            kind: artifact_probability(kind, record, context, on_error=self._on_filter_error)
            for kind in self.filters
        }

    @property
    def threshold(self) -> float:
        if self.combined_stats is None:
            raise InvalidState("No threshold before the first pass ends", {"state": self.state.name})
        return self.combined_stats.threshold

    # -----------------
    # First pass
    # -----------------

    def begin_first_pass(self) -> None:
        self._require(EngineState.UNINITIALIZED)
        self.state = EngineState.ACCUMULATING
        logger.info("First pass: scoring with %d filters", len(self.filters))

    def end_first_pass(self) -> None:
        """Calibrate every filter and the combined decision, then fit the allele-fraction model."""
        self._require(EngineState.ACCUMULATING)
        stats = self.statistics
        fdr = self.config.max_false_discovery_rate

        self.filter_stats = {
            name: calculate_filter_threshold(stats.probabilities[name], fdr, name)
            for name in stats.filter_names
        }
        self.combined_stats = calculate_filter_threshold(stats.max_probabilities, fdr, COMBINED_FILTER_NAME)
        logger.info(
            "First pass done: %d records, threshold %.4g, %d expected passing",
            stats.num_records,
            self.combined_stats.threshold,
            self.combined_stats.num_passing,
        )

        self.clusterer = AlleleFractionClusterer(
            stats.clustering_counts,
            self.config.clustering_concentration,
            num_clusters=self.config.num_af_clusters,
            num_iterations=self.config.clustering_iterations,
            tolerance=self.config.clustering_tolerance,
        )
        self.context = self.context.for_second_pass(
            filtered_phased_calls=stats.phased_calls, af_clusterer=self.clusterer
        )
        self._log_degraded("First pass")
        self.state = EngineState.CALIBRATED

    # -----------------
    # Both passes
    # -----------------

    def submit(self, record: VariantRecord):
        """Score one record.

        During the first pass this returns the per-filter probabilities by
        filter name; after calibration it returns a :class:`Decision`.
        """
        if self.state is EngineState.ACCUMULATING:
            return self._accumulate(record)
        self._require(EngineState.CALIBRATED, EngineState.EMITTING)
        self.state = EngineState.EMITTING
        return self._decide(record)

    def _accumulate(self, record: VariantRecord) -> Dict[str, float]:
        probabilities = self._score(record, self.context)
        self.statistics.add(
            record,
            probabilities,
            normal_samples=self.context.normal_samples,
            first_pass_threshold=self.config.first_pass_threshold,
        )
        return {kind.filter_name: p for kind, p in probabilities.items()}

    def _decide(self, record: VariantRecord) -> Decision:
        threshold = self.threshold
        probabilities = self._score(record, self.context)

        failed = tuple(
            kind.filter_name for kind, p in probabilities.items() if exceeds_threshold(p, threshold)
        )
        phred_posteriors = {
            kind.phred_annotation: error_prob_to_phred(p)
            for kind, p in probabilities.items()
            if kind.phred_annotation is not None
        }

        self._num_emitted += 1
        if not failed:
            self._num_passing += 1
            for kind, p in probabilities.items():
                self._expected_false_positives[kind.filter_name] += p

        return Decision(
            filters=failed,
            phred_posteriors=phred_posteriors,
            probabilities={kind.filter_name: p for kind, p in probabilities.items()},
        )

    # -----------------
    # Second pass
    # -----------------

    def end_second_pass(self) -> List[FilterStats]:
        """Finish the run and return one summary row per filter."""
        self._require(EngineState.CALIBRATED, EngineState.EMITTING)
        threshold = self.threshold
        rows = []
        for kind in self.filters:
            fps = self._expected_false_positives[kind.filter_name]
            rows.append(
                FilterStats(
                    filter_name=kind.filter_name,
                    threshold=threshold,
                    expected_false_positives=fps,
                    num_passing=self._num_passing,
                    expected_fdr=fps / self._num_passing if self._num_passing > 0 else 0.0,
                    requested_fdr=self.config.max_false_discovery_rate,
                )
            )
        logger.info("Second pass done: %d of %d records pass", self._num_passing, self._num_emitted)
        self._log_degraded("Second pass")
        self.state = EngineState.DONE
        return rows

    @property
    def num_passing(self) -> int:
        return self._num_passing

    @property
    def num_emitted(self) -> int:
        return self._num_emitted


def filter_variants(
    records: Callable[[], Iterable[VariantRecord]],
    *,
    config: FilteringConfig,
    context: Optional[FilteringContext] = None,
    filters: Optional[Sequence[FilterKind]] = None,
    on_decision: Optional[Callable[[VariantRecord, Decision], None]] = None,
    progress: bool = False,
) -> Dict[str, object]:
    """Run both passes over ``records()`` and return a summary dict.

    ``records`` is called once per pass and must yield the same records in the
    same order each time. ``on_decision`` receives every second-pass decision.
    """
    t0 = time.time()
    engine = TwoPassFilter(config, context, filters=filters)

    engine.begin_first_pass()
    it: Iterable[VariantRecord] = records()
    if progress:
        it = tqdm(it, unit="variant", desc="First pass")
    for record in it:
        engine.submit(record)
    engine.end_first_pass()

    posterior_bins = np.linspace(0.0, 1.0, 21)
    posterior_counts = np.zeros(len(posterior_bins) - 1, dtype=np.int64)
    filter_counts: Dict[str, int] = {k.filter_name: 0 for k in engine.filters}

    it = records()
    if progress:
        it = tqdm(it, unit="variant", desc="Second pass")
    for record in it:
        decision = engine.submit(record)
        posterior_counts += np.histogram([max(decision.probabilities.values(), default=0.0)], bins=posterior_bins)[0]
        for name in decision.filters:
            filter_counts[name] += 1
        if on_decision is not None:
            on_decision(record, decision)
    rows = engine.end_second_pass()

    assert engine.combined_stats is not None and engine.clusterer is not None
    return {
        "config": config.to_dict(),
        "filters": [k.filter_name for k in engine.filters],
        "threshold": float(engine.threshold),
        "counts": {
            "records": engine.num_emitted,
            "passing": engine.num_passing,
            "filtered": engine.num_emitted - engine.num_passing,
            "clustering_data": len(engine.statistics.clustering_counts),
            "filtered_phase_sets": len(engine.statistics.phased_calls),
        },
        "filter_counts": filter_counts,
        "combined_calibration": engine.combined_stats.to_row(),
        "filter_calibration": [s.to_row() for s in engine.filter_stats.values()],
        "filter_stats": [r.to_row() for r in rows],
        "allele_fraction_model": engine.clusterer.summary(),
        "max_probability_hist": {
            "bin_edges": posterior_bins.tolist(),
            "counts": posterior_counts.tolist(),
        },
        "runtime_seconds": float(time.time() - t0),
    }
