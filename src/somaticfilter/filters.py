"""Artifact filters.

Every filter is a member of :class:`FilterKind` and is scored through
:func:`artifact_probability`. Hard filters return exactly 0 or 1; soft
filters return a posterior probability of artifact. A filter whose required
annotations are missing abstains with probability 0.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from scipy import stats

from . import keys
from .config import FilteringConfig
from .context import FilteringContext
from .errors import DimensionMismatch, InvalidState
from .models import VariantRecord
from .utils import LOG10_ONE_HALF, log10sumlog10, max_index, normalize_from_log10, phred_to_error_prob

logger = logging.getLogger(__name__)

# Index of the no-artifact state in the strand artifact posterior (forward, reverse, none).
_STRAND_NO_ARTIFACT = 2
_MIN_NORMAL_ARTIFACT_RATIO = 0.1
_IMPUTED_NORMAL_BASE_QUALITY = 30
_MIN_ALLELE_FRACTION_FOR_GERMLINE_HOM_ALT = 0.9

# Errors from malformed per-record values; the filter abstains for that record.
RECOVERABLE_ERRORS = (ArithmeticError, LookupError, ValueError, TypeError)


@dataclass(frozen=True)
class FilterSpec:
    """Static description of a filter.

    Attributes
    ----------
    name:
        Stable filter name written to the FILTER column.
    required_annotations:
        Record-level annotations that must be present for the filter to run.
    is_hard:
        True for deterministic 0/1 filters.
    phred_annotation:
        INFO key receiving the phred-scaled posterior, for soft filters that expose one.
    """

    name: str
    required_annotations: Tuple[str, ...]
    is_hard: bool
    phred_annotation: Optional[str] = None


class FilterKind(Enum):
    TUMOR_EVIDENCE = FilterSpec(keys.TUMOR_LOD_FILTER, (keys.TUMOR_LOD,), True)
    WEAK_EVIDENCE = FilterSpec(
        keys.WEAK_EVIDENCE_FILTER, (keys.TUMOR_LOD,), False, keys.SOMATIC_EVIDENCE_QUAL
    )
    BASE_QUALITY = FilterSpec(keys.BASE_QUALITY_FILTER, (keys.MEDIAN_BASE_QUALITY, keys.TUMOR_LOD), True)
    MAPPING_QUALITY = FilterSpec(
        keys.MAPPING_QUALITY_FILTER, (keys.MEDIAN_MAPPING_QUALITY, keys.TUMOR_LOD), True
    )
    DUPLICATED_EVIDENCE = FilterSpec(keys.DUPLICATED_EVIDENCE_FILTER, (keys.UNIQUE_ALT_READ_COUNT,), True)
    STRAND_ARTIFACT = FilterSpec(
        keys.STRAND_ARTIFACT_FILTER, (keys.STRAND_ARTIFACT_POSTERIOR, keys.STRAND_ARTIFACT_AF), True
    )
    CONTAMINATION = FilterSpec(
        keys.CONTAMINATION_FILTER, (keys.POPULATION_AF,), False, keys.CONTAMINATION_QUAL
    )
    PANEL_OF_NORMALS = FilterSpec(keys.PANEL_OF_NORMALS_FILTER, (), True)
    NORMAL_ARTIFACT = FilterSpec(
        keys.ARTIFACT_IN_NORMAL_FILTER, (keys.NORMAL_ARTIFACT_LOD, keys.TUMOR_LOD), True
    )
    READ_ORIENTATION = FilterSpec(keys.READ_ORIENTATION_FILTER, (), False)
    CLUSTERED_EVENTS = FilterSpec(keys.CLUSTERED_EVENTS_FILTER, (keys.EVENT_COUNT_IN_HAPLOTYPE,), True)
    MULTIALLELIC = FilterSpec(keys.MULTIALLELIC_FILTER, (keys.TUMOR_LOD,), True)
    READ_POSITION = FilterSpec(keys.READ_POSITION_FILTER, (keys.MEDIAN_READ_POSITION,), True)
    FRAGMENT_LENGTH = FilterSpec(keys.FRAGMENT_LENGTH_FILTER, (keys.MEDIAN_FRAGMENT_LENGTH,), True)
    N_RATIO = FilterSpec(keys.N_RATIO_FILTER, (keys.N_COUNT,), True)
    STRICT_STRAND_BIAS = FilterSpec(keys.STRICT_STRAND_FILTER, (), True)
    SHORT_TANDEM_REPEAT = FilterSpec(
        keys.STR_CONTRACTION_FILTER, (keys.REPEATS_PER_ALLELE, keys.REPEAT_UNIT), True
    )
    FILTERED_HAPLOTYPE = FilterSpec(keys.BAD_HAPLOTYPE_FILTER, (), True)
    GERMLINE = FilterSpec(
        keys.GERMLINE_RISK_FILTER, (keys.TUMOR_LOD, keys.POPULATION_AF), False, keys.GERMLINE_QUAL
    )
    CHIMERIC_ORIGINAL_ALIGNMENT = FilterSpec(
        keys.CHIMERIC_ORIGINAL_ALIGNMENT_FILTER, (keys.ORIGINAL_CONTIG_MISMATCH,), True
    )
    LOW_AVG_ALT_QUALITY = FilterSpec(keys.LOW_AVG_ALT_QUALITY_FILTER, (keys.TUMOR_LOD,), True)

    @property
    def filter_name(self) -> str:
        return self.value.name

    @property
    def is_hard(self) -> bool:
        return self.value.is_hard

    @property
    def phred_annotation(self) -> Optional[str]:
        return self.value.phred_annotation

    @classmethod
    def from_name(cls, name: str) -> "FilterKind":
        for kind in cls:
            if kind.filter_name == name:
                return kind
        raise KeyError(f"Unknown filter: {name}")


_COMMON_FILTERS = (
    FilterKind.TUMOR_EVIDENCE,
    FilterKind.WEAK_EVIDENCE,
    FilterKind.BASE_QUALITY,
    FilterKind.MAPPING_QUALITY,
    FilterKind.DUPLICATED_EVIDENCE,
    FilterKind.STRAND_ARTIFACT,
    FilterKind.CONTAMINATION,
    FilterKind.PANEL_OF_NORMALS,
    FilterKind.NORMAL_ARTIFACT,
    FilterKind.READ_ORIENTATION,
)

_MITOCHONDRIA_FILTERS = (
    FilterKind.LOW_AVG_ALT_QUALITY,
    FilterKind.CHIMERIC_ORIGINAL_ALIGNMENT,
)

_NUCLEAR_FILTERS = (
    FilterKind.CLUSTERED_EVENTS,
    FilterKind.MULTIALLELIC,
    FilterKind.READ_POSITION,
    FilterKind.FRAGMENT_LENGTH,
    FilterKind.N_RATIO,
    FilterKind.STRICT_STRAND_BIAS,
    FilterKind.SHORT_TANDEM_REPEAT,
    FilterKind.FILTERED_HAPLOTYPE,
    FilterKind.GERMLINE,
)

# Filters that judge the strength of somatic evidence rather than an artifact
# mechanism; calls failing only these still inform allele-fraction clustering.
EVIDENCE_FILTERS = frozenset({FilterKind.TUMOR_EVIDENCE, FilterKind.WEAK_EVIDENCE})


def default_filters(config: FilteringConfig) -> Tuple[FilterKind, ...]:
    """Ordered filter set of a run: common filters, then the mitochondrial or nuclear set."""
    if config.mitochondria:
        return _COMMON_FILTERS + _MITOCHONDRIA_FILTERS
    return _COMMON_FILTERS + _NUCLEAR_FILTERS


# -----------------
# Shared helpers
# -----------------

def weighted_median(depths_and_posteriors: Iterable[Tuple[int, float]]) -> float:
    """Lowest posterior that accounts for half of the total alt depth.

    Pairs are (alt depth, posterior). Returns 0 for empty input.
    """
    pairs = sorted(depths_and_posteriors, key=lambda p: p[1])
    total = sum(d for d, _ in pairs)
    cumulative = 0
    for depth, posterior in pairs:
        cumulative += depth
        if cumulative * 2 >= total:
            return float(posterior)
    return 0.0


def _max_tumor_lod_index(record: VariantRecord) -> int:
    return max_index(record.get_float_list(keys.TUMOR_LOD))


def _population_allele_frequencies(record: VariantRecord) -> List[float]:
    # POPAF is stored as -log10 of the frequency.
    return [10.0 ** (-x) for x in record.get_float_list(keys.POPULATION_AF)]


def _count_log10(count: float, p: float) -> float:
    """count * log10(p), with 0 * log10(0) taken as 0."""
    if count == 0:
        return 0.0
    if p <= 0:
        return -math.inf
    return count * math.log10(p)


def weighted_average_of_tumor_afs(record: VariantRecord, normal_samples: Iterable[str]) -> np.ndarray:
    """Depth-weighted average of tumor sample AF vectors, one entry per alt allele."""
    normals = frozenset(normal_samples)
    n_alts = record.n_alleles - 1
    total_weight = 0.0
    afs = np.zeros(n_alts)
    for s in record.tumor_samples(normals):
        weight = float(s.depth)
        sample_afs = s.get_float_list(keys.ALLELE_FRACTION, default=[0.0])
        padded = np.zeros(n_alts)
        padded[: min(n_alts, len(sample_afs))] = sample_afs[:n_alts]
        afs += weight * padded
        total_weight += weight
    if total_weight <= 0:
        return afs
    return afs / total_weight


def germline_log10_posteriors(
    population_afs: Sequence[float],
    log10_odds_het_vs_somatic: Sequence[float],
    log10_odds_hom_alt_vs_somatic: Sequence[float],
    normal_log10_odds: Optional[Sequence[float]],
    log10_prior_somatic: float,
) -> np.ndarray:
    """log10 posterior probability that each alt allele is germline.

    Germline het and hom-alt hypotheses carry Hardy-Weinberg priors from the
    population allele frequency and are penalized by the normal log odds of
    no variant in the normal; the alternative is a somatic event with prior
    ``10 ** log10_prior_somatic``.
    """
    f = np.asarray(population_afs, dtype=float)
    het = np.asarray(log10_odds_het_vs_somatic, dtype=float)
    hom_alt = np.asarray(log10_odds_hom_alt_vs_somatic, dtype=float)
    if not (f.size == het.size == hom_alt.size):
        raise ValueError("Need one population AF and one log odds per alt allele")
    normal = np.zeros(f.size) if normal_log10_odds is None else np.asarray(normal_log10_odds, dtype=float)
    if normal.size != f.size:
        raise ValueError("Need one normal log odds per alt allele")

    out = np.empty(f.size)
    with np.errstate(divide="ignore"):
        log10_prior_het = np.log10(2.0 * f * (1.0 - f))
        log10_prior_hom_alt = 2.0 * np.log10(f)
    for i in range(f.size):
        log10_germline = (
            log10sumlog10([log10_prior_het[i] + het[i], log10_prior_hom_alt[i] + hom_alt[i]]) - normal[i]
        )
        if log10_germline == -math.inf:
            out[i] = -math.inf
            continue
        out[i] = log10_germline - log10sumlog10([log10_germline, log10_prior_somatic])
    return out


# -----------------
# Hard filters
# -----------------

def _tumor_evidence(record: VariantRecord, ctx: FilteringContext) -> bool:
    return max(record.get_float_list(keys.TUMOR_LOD)) < ctx.config.tumor_lod_threshold


def _base_quality(record: VariantRecord, ctx: FilteringContext) -> bool:
    mbq = record.get_int_list(keys.MEDIAN_BASE_QUALITY)
    return mbq[_max_tumor_lod_index(record) + 1] < ctx.config.min_median_base_quality


def _mapping_quality(record: VariantRecord, ctx: FilteringContext) -> bool:
    mmq = record.get_int_list(keys.MEDIAN_MAPPING_QUALITY)
    return mmq[_max_tumor_lod_index(record) + 1] < ctx.config.min_median_mapping_quality


def _duplicated_evidence(record: VariantRecord, ctx: FilteringContext) -> bool:
    return record.get_int(keys.UNIQUE_ALT_READ_COUNT) <= ctx.config.unique_alt_read_count


def _strand_artifact(record: VariantRecord, ctx: FilteringContext) -> bool:
    posteriors = record.get_float_list(keys.STRAND_ARTIFACT_POSTERIOR)
    map_afs = record.get_float_list(keys.STRAND_ARTIFACT_AF)
    z = max_index(posteriors)
    if z == _STRAND_NO_ARTIFACT:
        return False
    return (
        posteriors[z] > ctx.config.strand_artifact_posterior_threshold
        and map_afs[z] < ctx.config.strand_artifact_af_threshold
    )


def _panel_of_normals(record: VariantRecord, ctx: FilteringContext) -> bool:
    return bool(record.get_attribute(keys.IN_PON, False))


def _normal_artifact(record: VariantRecord, ctx: FilteringContext) -> bool:
    cfg = ctx.config
    idx = _max_tumor_lod_index(record)
    tumor_ad = record.sum_allele_depths(ctx.normal_samples)
    normal_ad = record.sum_allele_depths(ctx.normal_samples, include_tumor=False, include_normal=True)
    tumor_depth, normal_depth = sum(tumor_ad), sum(normal_ad)
    normal_alt = normal_ad[idx + 1]

    tumor_af = tumor_ad[idx + 1] / tumor_depth if tumor_depth > 0 else 0.0
    normal_af = normal_alt / normal_depth if normal_depth > 0 else 0.0
    # normal AF much smaller than tumor AF is not a normal artifact
    if normal_af < _MIN_NORMAL_ARTIFACT_RATIO * tumor_af:
        return False

    # NALOD is the log odds of no artifact, hence the sign
    normal_artifact_lods = record.get_float_list(keys.NORMAL_ARTIFACT_LOD)
    if -normal_artifact_lods[idx] > cfg.normal_artifact_lod_threshold:
        return True

    # low base quality normal support escapes NALOD; test the pileup directly
    base_quality = record.get_int_list(keys.MEDIAN_BASE_QUALITY, default=[_IMPUTED_NORMAL_BASE_QUALITY])[0]
    p_value = float(stats.binom.sf(normal_alt - 1, normal_depth, phred_to_error_prob(base_quality)))
    return p_value < cfg.normal_pileup_p_value_threshold


def _clustered_events(record: VariantRecord, ctx: FilteringContext) -> bool:
    return record.get_int(keys.EVENT_COUNT_IN_HAPLOTYPE) > ctx.config.max_events_in_region


def _multiallelic(record: VariantRecord, ctx: FilteringContext) -> bool:
    tumor_lods = record.get_float_list(keys.TUMOR_LOD)
    passing = sum(1 for x in tumor_lods if x > ctx.config.tumor_lod_threshold)
    return passing > ctx.config.num_alt_alleles_threshold


def _read_position(record: VariantRecord, ctx: FilteringContext) -> bool:
    mpos = record.get_int_list(keys.MEDIAN_READ_POSITION)
    # negative values mark an unavailable position
    return -1 < mpos[0] < ctx.config.min_median_read_position


def _fragment_length(record: VariantRecord, ctx: FilteringContext) -> bool:
    mfrl = record.get_int_list(keys.MEDIAN_FRAGMENT_LENGTH)
    return abs(mfrl[1] - mfrl[0]) > ctx.config.max_median_fragment_length_difference


def _n_ratio(record: VariantRecord, ctx: FilteringContext) -> bool:
    ad = record.sum_allele_depths(ctx.normal_samples, include_tumor=True, include_normal=True)
    alt_count = sum(ad) - ad[0]
    if alt_count == 0:
        return False
    return record.get_int(keys.N_COUNT) / alt_count >= ctx.config.n_ratio


def _strict_strand_bias(record: VariantRecord, ctx: FilteringContext) -> bool:
    if not ctx.config.strict_strand_bias:
        return False
    alt_forward = 0
    alt_reverse = 0
    for s in record.tumor_samples(ctx.normal_samples):
        if not s.has_attribute(keys.STRAND_BIAS_BY_SAMPLE):
            return False
        # ref forward, ref reverse, alt forward, alt reverse
        sb = s.get_int_list(keys.STRAND_BIAS_BY_SAMPLE)
        alt_forward += sb[2]
        alt_reverse += sb[3]
    return alt_forward == 0 or alt_reverse == 0


def _short_tandem_repeat(record: VariantRecord, ctx: FilteringContext) -> bool:
    cfg = ctx.config
    rpa = record.get_int_list(keys.REPEATS_PER_ALLELE)
    if len(rpa) < 2:
        return False
    repeat_unit = record.get_string(keys.REPEAT_UNIT)
    reference_str_bases = len(repeat_unit) * rpa[0]
    pcr_slips = rpa[0] - rpa[1]
    if reference_str_bases < cfg.min_pcr_slippage_bases or abs(pcr_slips) != 1:
        return False

    # a small p-value rejects slippage as the source of the alt reads
    ad = record.sum_allele_depths(ctx.normal_samples)
    if len(ad) < 2:
        return False
    p_value = float(stats.binom.sf(ad[1] - 1, sum(ad), cfg.pcr_slippage_rate))
    return p_value > cfg.pcr_slippage_p_value_threshold


def _filtered_haplotype(record: VariantRecord, ctx: FilteringContext) -> bool:
    tumors = record.tumor_samples(ctx.normal_samples)
    if not tumors:
        return False
    # phasing of the tumor sample with the greatest allele fraction
    tumor = max(tumors, key=lambda s: max(s.get_float_list(keys.ALLELE_FRACTION, default=[0.0])))
    if not (tumor.has_attribute(keys.PHASING_GT) and tumor.has_attribute(keys.PHASING_ID)):
        return False

    filtered_call = ctx.filtered_phased_calls.get(tumor.get_string(keys.PHASING_ID))
    if filtered_call is None:
        return False
    return (
        tumor.get_string(keys.PHASING_GT) in filtered_call.phased_genotypes
        and abs(filtered_call.position - record.position) <= ctx.config.max_distance_to_filtered_call
    )


def _chimeric_original_alignment(record: VariantRecord, ctx: FilteringContext) -> bool:
    if not record.is_biallelic:
        return False
    alt_count = sum(s.allele_depths[1] for s in record.samples)
    non_mt_original_alignments = record.get_int(keys.ORIGINAL_CONTIG_MISMATCH)
    if alt_count == 0:
        return non_mt_original_alignments > 0
    return non_mt_original_alignments / alt_count > ctx.config.non_mt_alt_by_alt


def _low_avg_alt_quality(record: VariantRecord, ctx: FilteringContext) -> bool:
    if not record.is_biallelic:
        return False
    lod = record.get_float(keys.TUMOR_LOD)
    depth = record.get_float(keys.DEPTH, default=1.0)
    return lod / depth < ctx.config.lod_by_depth


# -----------------
# Soft filters
# -----------------

def _weak_evidence(record: VariantRecord, ctx: FilteringContext) -> float:
    """Posterior that the call is not somatic given its tumor log odds.

    After the first pass the log odds are corrected from a flat allele-fraction
    prior to the clustered allele-fraction distribution.
    """
    cfg = ctx.config
    tumor_lods = record.get_float_list(keys.TUMOR_LOD)
    idx = max_index(tumor_lods)

    correction = 0.0
    if ctx.af_clusterer is not None:
        ad = record.sum_allele_depths(ctx.normal_samples)
        correction = ctx.af_clusterer.log10_odds_correction(ad[idx + 1], ad[0])

    log10_somatic = cfg.log10_prior_somatic + tumor_lods[idx] + correction
    log10_nothing = math.log10(1.0 - cfg.prior_somatic)
    return float(normalize_from_log10([log10_nothing, log10_somatic])[0])


def _contamination(record: VariantRecord, ctx: FilteringContext) -> float:
    prior_somatic = ctx.config.prior_somatic
    population_afs = _population_allele_frequencies(record)

    depths_and_posteriors: List[Tuple[int, float]] = []
    for s in record.tumor_samples(ctx.normal_samples):
        contamination = ctx.contamination(s.name)
        idx = max_index(s.get_float_list(keys.ALLELE_FRACTION, default=[1.0]))
        alt_count = s.allele_depths[idx + 1]
        depth = s.depth
        f = population_afs[idx]

        somatic_likelihood = 1.0 / (depth + 1)
        single_contaminant = 2 * f * (1 - f) * stats.binom.pmf(alt_count, depth, contamination / 2) + (
            f**2
        ) * stats.binom.pmf(alt_count, depth, contamination)
        many_contaminants = stats.binom.pmf(alt_count, depth, contamination * f)
        contaminant_likelihood = max(float(single_contaminant), float(many_contaminants))

        numerator = (1 - prior_somatic) * contaminant_likelihood
        posterior = numerator / (numerator + prior_somatic * somatic_likelihood)
        depths_and_posteriors.append((alt_count, posterior))

    return weighted_median(depths_and_posteriors)


def _read_orientation(record: VariantRecord, ctx: FilteringContext) -> float:
    if not record.is_snp:
        return 0.0
    depths_and_posteriors: List[Tuple[int, float]] = []
    for s in record.tumor_samples(ctx.normal_samples):
        if not (s.has_attribute(keys.READ_ORIENTATION_POSTERIOR) and s.has_attribute(keys.READ_ORIENTATION_PRIOR)):
            continue
        depths_and_posteriors.append((s.alt_depth, s.get_float(keys.READ_ORIENTATION_POSTERIOR)))
    return weighted_median(depths_and_posteriors)


def _germline(record: VariantRecord, ctx: FilteringContext) -> float:
    tumor_lods = record.get_float_list(keys.TUMOR_LOD)
    population_afs = _population_allele_frequencies(record)
    normal_lods = record.get_float_list(keys.NORMAL_LOD) if record.has_attribute(keys.NORMAL_LOD) else None

    weighted_sum_of_mafs = 0.0
    for s in record.tumor_samples(ctx.normal_samples):
        maf = ctx.minor_allele_fraction(s.name, record.contig, record.position)
        weighted_sum_of_mafs += (0.5 if maf is None else maf) * s.depth

    alt_afs = weighted_average_of_tumor_afs(record, ctx.normal_samples)
    allele_counts = record.sum_allele_depths(ctx.normal_samples)
    total = sum(allele_counts)
    if total == 0:
        return 0.0

    # expected allele fraction of a germline het in the pooled tumor reads
    maf = weighted_sum_of_mafs / total
    ref_count = allele_counts[0]
    alt_counts = allele_counts[1:]

    het_odds = []
    for n, af in enumerate(alt_afs):
        alt_minor = _count_log10(ref_count, 1 - maf) + _count_log10(alt_counts[n], maf)
        alt_major = _count_log10(ref_count, maf) + _count_log10(alt_counts[n], 1 - maf)
        log10_germline = LOG10_ONE_HALF + log10sumlog10([alt_minor, alt_major])
        log10_somatic = _count_log10(ref_count, 1 - af) + _count_log10(alt_counts[n], af)
        het_odds.append(log10_germline - log10_somatic)

    # a high allele fraction looks the same under germline hom-alt and somatic
    hom_alt_odds = [0.0 if af >= _MIN_ALLELE_FRACTION_FOR_GERMLINE_HOM_ALT else -math.inf for af in alt_afs]

    posteriors = germline_log10_posteriors(
        population_afs, het_odds, hom_alt_odds, normal_lods, ctx.config.log10_prior_somatic
    )
    return float(10.0 ** posteriors[max_index(tumor_lods)])


_Scorer = Callable[[VariantRecord, FilteringContext], float]

_SCORERS: Dict[FilterKind, _Scorer] = {
    FilterKind.TUMOR_EVIDENCE: _tumor_evidence,
    FilterKind.WEAK_EVIDENCE: _weak_evidence,
    FilterKind.BASE_QUALITY: _base_quality,
    FilterKind.MAPPING_QUALITY: _mapping_quality,
    FilterKind.DUPLICATED_EVIDENCE: _duplicated_evidence,
    FilterKind.STRAND_ARTIFACT: _strand_artifact,
    FilterKind.CONTAMINATION: _contamination,
    FilterKind.PANEL_OF_NORMALS: _panel_of_normals,
    FilterKind.NORMAL_ARTIFACT: _normal_artifact,
    FilterKind.READ_ORIENTATION: _read_orientation,
    FilterKind.CLUSTERED_EVENTS: _clustered_events,
    FilterKind.MULTIALLELIC: _multiallelic,
    FilterKind.READ_POSITION: _read_position,
    FilterKind.FRAGMENT_LENGTH: _fragment_length,
    FilterKind.N_RATIO: _n_ratio,
    FilterKind.STRICT_STRAND_BIAS: _strict_strand_bias,
    FilterKind.SHORT_TANDEM_REPEAT: _short_tandem_repeat,
    FilterKind.FILTERED_HAPLOTYPE: _filtered_haplotype,
    FilterKind.GERMLINE: _germline,
    FilterKind.CHIMERIC_ORIGINAL_ALIGNMENT: _chimeric_original_alignment,
    FilterKind.LOW_AVG_ALT_QUALITY: _low_avg_alt_quality,
}


def artifact_probability(
    kind: FilterKind,
    record: VariantRecord,
    context: FilteringContext,
    *,
    on_error: Optional[Callable[[FilterKind, Exception], None]] = None,
) -> float:
    """Probability in [0, 1] that ``record`` is an artifact according to ``kind``.

    Returns 0 without scoring when a required annotation is missing. Malformed
    per-record values also yield 0; ``on_error`` is told about them.
    """
    filter_spec = kind.value
    if not all(record.has_attribute(key) for key in filter_spec.required_annotations):
        return 0.0

    try:
        value = float(_SCORERS[kind](record, context))
    except (DimensionMismatch, InvalidState):
        raise
    except RECOVERABLE_ERRORS as e:
        logger.debug("Filter %s failed on %s: %s", filter_spec.name, record.label, e)
        if on_error is not None:
            on_error(kind, e)
        return 0.0

    if math.isnan(value):
        logger.debug("Filter %s produced NaN on %s", filter_spec.name, record.label)
        if on_error is not None:
            on_error(kind, ValueError("NaN artifact probability"))
        return 0.0
    return min(1.0, max(0.0, value))
