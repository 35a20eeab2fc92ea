from __future__ import annotations

import math
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict

from .errors import InvalidParameters


@dataclass(frozen=True)
class FilteringConfig:
    """Numeric knobs of a filtering run.

    Hard-filter thresholds gate their filters directly; only
    ``max_false_discovery_rate`` feeds the calibrated decision.

    Parameters
    ----------
    max_false_discovery_rate:
        Requested bound on the expected fraction of passing calls that are artifacts.
    tumor_lod_threshold:
        Minimum tumor log10 odds for a call to count as evidenced.
    log10_prior_somatic:
        log10 prior probability of a somatic event at a site.
    contamination_estimate:
        Contamination used for samples absent from the contamination table.
    clustering_concentration:
        Concentration of the symmetric Dirichlet prior over cluster occupancy.
    clustering_iterations:
        Number of EM iterations of the allele-fraction clusterer.
    num_af_clusters:
        Number of signal clusters seeded by the allele-fraction clusterer.
    first_pass_threshold:
        Provisional artifact-probability threshold used during the first pass
        to pick clustering data and to record filtered phased haplotypes.
    mitochondria:
        Use the mitochondrial filter set instead of the nuclear one.
    """

    max_false_discovery_rate: float = 0.05
    tumor_lod_threshold: float = 5.3
    log10_prior_somatic: float = -6.0
    normal_artifact_lod_threshold: float = 0.0
    normal_pileup_p_value_threshold: float = 0.001
    min_median_base_quality: int = 20
    min_median_mapping_quality: int = 30
    unique_alt_read_count: int = 0
    strand_artifact_posterior_threshold: float = 0.99
    strand_artifact_af_threshold: float = 0.01
    contamination_estimate: float = 0.0
    max_events_in_region: int = 2
    num_alt_alleles_threshold: int = 1
    min_median_read_position: int = 1
    max_median_fragment_length_difference: int = 10000
    n_ratio: float = math.inf
    strict_strand_bias: bool = False
    min_pcr_slippage_bases: int = 8
    pcr_slippage_rate: float = 0.1
    pcr_slippage_p_value_threshold: float = 0.001
    max_distance_to_filtered_call: int = 100
    mitochondria: bool = False
    lod_by_depth: float = 0.0035
    non_mt_alt_by_alt: float = 1.0
    clustering_concentration: float = 1.0
    clustering_iterations: int = 10
    clustering_tolerance: float = 0.0
    num_af_clusters: int = 20
    first_pass_threshold: float = 0.5

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, float) and math.isnan(value):
                raise InvalidParameters(f"{f.name} must not be NaN")

        if not math.isfinite(self.max_false_discovery_rate) or self.max_false_discovery_rate < 0:
            raise InvalidParameters(
                "max_false_discovery_rate must be a non-negative number",
                {"max_false_discovery_rate": self.max_false_discovery_rate},
            )
        for name in (
            "normal_pileup_p_value_threshold",
            "strand_artifact_posterior_threshold",
            "strand_artifact_af_threshold",
            "contamination_estimate",
            "pcr_slippage_rate",
            "pcr_slippage_p_value_threshold",
            "first_pass_threshold",
        ):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise InvalidParameters(f"{name} must be in [0, 1], got {value}", {name: value})
        if self.log10_prior_somatic >= 0:
            raise InvalidParameters(
                f"log10_prior_somatic must be negative, got {self.log10_prior_somatic}"
            )
        for name in (
            "unique_alt_read_count",
            "max_events_in_region",
            "num_alt_alleles_threshold",
            "min_pcr_slippage_bases",
            "max_distance_to_filtered_call",
            "num_af_clusters",
            "clustering_tolerance",
        ):
            value = getattr(self, name)
            if value < 0:
                raise InvalidParameters(f"{name} must be >= 0, got {value}", {name: value})
        if self.n_ratio <= 0:
            raise InvalidParameters(f"n_ratio must be positive, got {self.n_ratio}")
        if not math.isfinite(self.clustering_concentration) or self.clustering_concentration <= 0:
            raise InvalidParameters(
                f"clustering_concentration must be positive, got {self.clustering_concentration}"
            )
        if self.clustering_iterations < 1:
            raise InvalidParameters(
                f"clustering_iterations must be >= 1, got {self.clustering_iterations}"
            )

    @property
    def prior_somatic(self) -> float:
        return 10.0 ** self.log10_prior_somatic

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        # JSON has no infinity.
        if math.isinf(d["n_ratio"]):
            d["n_ratio"] = None
        return d
