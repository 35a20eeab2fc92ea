from typing import Any, Dict, Optional, Tuple

import pytest

from somaticfilter import keys
from somaticfilter.config import FilteringConfig
from somaticfilter.context import FilteringContext
from somaticfilter.errors import DimensionMismatch
from somaticfilter.filters import (
    FilterKind,
    artifact_probability,
    default_filters,
    weighted_median,
)
from somaticfilter.models import PhasedCall, SampleEvidence, VariantRecord


def _record(
    info: Optional[Dict[str, Any]] = None,
    *,
    tumor_ad: Tuple[int, ...] = (50, 20),
    normal_ad: Tuple[int, ...] = (40, 0),
    tumor_attrs: Optional[Dict[str, Any]] = None,
    alleles: Tuple[str, ...] = ("A", "G"),
    position: int = 1000,
) -> VariantRecord:
    return VariantRecord(
        contig="chr1",
        position=position,
        alleles=alleles,
        attributes=info or {},
        samples=(
            SampleEvidence("TUMOR", tumor_ad, tumor_attrs or {}),
            SampleEvidence("NORMAL", normal_ad, {}),
        ),
    )


def _ctx(**config: Any) -> FilteringContext:
    return FilteringContext.create(FilteringConfig(**config), normal_samples=["NORMAL"])


def _p(kind: FilterKind, record: VariantRecord, ctx: Optional[FilteringContext] = None) -> float:
    return artifact_probability(kind, record, ctx or _ctx())


def test_weighted_median() -> None:
    pairs = list(zip([1, 1, 1, 1], [0.1, 0.2, 0.3, 0.4]))
    assert weighted_median(pairs) == 0.2
    assert weighted_median(reversed(pairs)) == 0.2
    assert weighted_median([]) == 0.0
    assert weighted_median([(1, 0.9), (10, 0.1)]) == 0.1


@pytest.mark.parametrize("kind", list(FilterKind))
def test_missing_annotations_abstain(kind: FilterKind) -> None:
    assert _p(kind, _record()) == 0.0


def test_default_filter_sets() -> None:
    nuclear = default_filters(FilteringConfig())
    mito = default_filters(FilteringConfig(mitochondria=True))
    assert FilterKind.GERMLINE in nuclear
    assert FilterKind.CHIMERIC_ORIGINAL_ALIGNMENT not in nuclear
    assert FilterKind.CHIMERIC_ORIGINAL_ALIGNMENT in mito
    assert FilterKind.FILTERED_HAPLOTYPE not in mito
    assert nuclear[0] is FilterKind.TUMOR_EVIDENCE
    assert len({k.filter_name for k in FilterKind}) == len(FilterKind)


def test_from_name() -> None:
    assert FilterKind.from_name("germline_risk") is FilterKind.GERMLINE
    with pytest.raises(KeyError):
        FilterKind.from_name("no_such_filter")


@pytest.mark.parametrize(
    "kind,info,expected",
    [
        (FilterKind.TUMOR_EVIDENCE, {keys.TUMOR_LOD: (3.0,)}, 1.0),
        (FilterKind.TUMOR_EVIDENCE, {keys.TUMOR_LOD: (10.0,)}, 0.0),
        (FilterKind.BASE_QUALITY, {keys.TUMOR_LOD: (10.0,), keys.MEDIAN_BASE_QUALITY: (30, 10)}, 1.0),
        (FilterKind.BASE_QUALITY, {keys.TUMOR_LOD: (10.0,), keys.MEDIAN_BASE_QUALITY: (30, 30)}, 0.0),
        (FilterKind.MAPPING_QUALITY, {keys.TUMOR_LOD: (10.0,), keys.MEDIAN_MAPPING_QUALITY: (60, 20)}, 1.0),
        (FilterKind.MAPPING_QUALITY, {keys.TUMOR_LOD: (10.0,), keys.MEDIAN_MAPPING_QUALITY: (60, 60)}, 0.0),
        (FilterKind.DUPLICATED_EVIDENCE, {keys.UNIQUE_ALT_READ_COUNT: 0}, 1.0),
        (FilterKind.DUPLICATED_EVIDENCE, {keys.UNIQUE_ALT_READ_COUNT: 5}, 0.0),
        (
            FilterKind.STRAND_ARTIFACT,
            {keys.STRAND_ARTIFACT_POSTERIOR: (0.995, 0.003, 0.002), keys.STRAND_ARTIFACT_AF: (0.001, 0.1, 0.1)},
            1.0,
        ),
        (
            FilterKind.STRAND_ARTIFACT,
            {keys.STRAND_ARTIFACT_POSTERIOR: (0.01, 0.01, 0.98), keys.STRAND_ARTIFACT_AF: (0.0, 0.0, 0.3)},
            0.0,
        ),
        (FilterKind.PANEL_OF_NORMALS, {keys.IN_PON: True}, 1.0),
        (FilterKind.PANEL_OF_NORMALS, {keys.IN_PON: False}, 0.0),
        (FilterKind.CLUSTERED_EVENTS, {keys.EVENT_COUNT_IN_HAPLOTYPE: 3}, 1.0),
        (FilterKind.CLUSTERED_EVENTS, {keys.EVENT_COUNT_IN_HAPLOTYPE: 2}, 0.0),
        (FilterKind.READ_POSITION, {keys.MEDIAN_READ_POSITION: (0,)}, 1.0),
        (FilterKind.READ_POSITION, {keys.MEDIAN_READ_POSITION: (20,)}, 0.0),
        (FilterKind.READ_POSITION, {keys.MEDIAN_READ_POSITION: (-1,)}, 0.0),
        (FilterKind.FRAGMENT_LENGTH, {keys.MEDIAN_FRAGMENT_LENGTH: (300, 20000)}, 1.0),
        (FilterKind.FRAGMENT_LENGTH, {keys.MEDIAN_FRAGMENT_LENGTH: (300, 310)}, 0.0),
    ],
)
def test_hard_filter_rules(kind: FilterKind, info: Dict[str, Any], expected: float) -> None:
    assert _p(kind, _record(info)) == expected


def test_multiallelic() -> None:
    info = {keys.TUMOR_LOD: (10.0, 10.0)}
    record = _record(info, alleles=("A", "G", "T"), tumor_ad=(50, 20, 20), normal_ad=(40, 0, 0))
    assert _p(FilterKind.MULTIALLELIC, record) == 1.0
    info = {keys.TUMOR_LOD: (10.0, 1.0)}
    record = _record(info, alleles=("A", "G", "T"), tumor_ad=(50, 20, 1), normal_ad=(40, 0, 0))
    assert _p(FilterKind.MULTIALLELIC, record) == 0.0


def test_normal_artifact() -> None:
    info = {keys.NORMAL_ARTIFACT_LOD: (-2.5,), keys.TUMOR_LOD: (10.0,)}
    assert _p(FilterKind.NORMAL_ARTIFACT, _record(info, normal_ad=(30, 10))) == 1.0
    # no alt support in the normal
    assert _p(FilterKind.NORMAL_ARTIFACT, _record(info, normal_ad=(40, 0))) == 0.0


def test_n_ratio() -> None:
    record = _record({keys.N_COUNT: 10})
    assert _p(FilterKind.N_RATIO, record) == 0.0
    assert _p(FilterKind.N_RATIO, record, _ctx(n_ratio=0.5)) == 1.0


def test_strict_strand_bias() -> None:
    one_sided = _record(tumor_attrs={keys.STRAND_BIAS_BY_SAMPLE: (25, 25, 20, 0)})
    both = _record(tumor_attrs={keys.STRAND_BIAS_BY_SAMPLE: (25, 25, 10, 10)})
    assert _p(FilterKind.STRICT_STRAND_BIAS, one_sided) == 0.0
    strict = _ctx(strict_strand_bias=True)
    assert _p(FilterKind.STRICT_STRAND_BIAS, one_sided, strict) == 1.0
    assert _p(FilterKind.STRICT_STRAND_BIAS, both, strict) == 0.0


def test_short_tandem_repeat_contraction() -> None:
    info = {keys.REPEATS_PER_ALLELE: (10, 9), keys.REPEAT_UNIT: "A"}
    # few alt reads are explained by slippage
    assert _p(FilterKind.SHORT_TANDEM_REPEAT, _record(info, tumor_ad=(20, 2))) == 1.0
    assert _p(FilterKind.SHORT_TANDEM_REPEAT, _record(info, tumor_ad=(5, 40))) == 0.0
    # expansion by two units is not slippage
    info = {keys.REPEATS_PER_ALLELE: (10, 12), keys.REPEAT_UNIT: "A"}
    assert _p(FilterKind.SHORT_TANDEM_REPEAT, _record(info, tumor_ad=(20, 2))) == 0.0


def test_filtered_haplotype() -> None:
    ctx = FilteringContext(
        config=FilteringConfig(),
        normal_samples=frozenset({"NORMAL"}),
        filtered_phased_calls={"1000_A_G": PhasedCall(1000, frozenset({"0|1"}))},
    )
    phased = {keys.PHASING_ID: "1000_A_G", keys.PHASING_GT: "0|1"}
    assert _p(FilterKind.FILTERED_HAPLOTYPE, _record(tumor_attrs=phased, position=1050), ctx) == 1.0
    assert _p(FilterKind.FILTERED_HAPLOTYPE, _record(tumor_attrs=phased, position=1200), ctx) == 0.0
    other_haplotype = {keys.PHASING_ID: "1000_A_G", keys.PHASING_GT: "1|0"}
    assert _p(FilterKind.FILTERED_HAPLOTYPE, _record(tumor_attrs=other_haplotype, position=1050), ctx) == 0.0
    # nothing filtered during the first pass yet
    assert _p(FilterKind.FILTERED_HAPLOTYPE, _record(tumor_attrs=phased, position=1050)) == 0.0


def test_read_orientation() -> None:
    attrs = {keys.READ_ORIENTATION_POSTERIOR: 0.97, keys.READ_ORIENTATION_PRIOR: 0.01}
    assert _p(FilterKind.READ_ORIENTATION, _record(tumor_attrs=attrs)) == pytest.approx(0.97)
    indel = _record(tumor_attrs=attrs, alleles=("A", "AT"))
    assert _p(FilterKind.READ_ORIENTATION, indel) == 0.0


def test_weak_evidence() -> None:
    assert _p(FilterKind.WEAK_EVIDENCE, _record({keys.TUMOR_LOD: (2.0,)})) > 0.99
    assert _p(FilterKind.WEAK_EVIDENCE, _record({keys.TUMOR_LOD: (20.0,)})) < 1e-6


def test_contamination() -> None:
    info = {keys.POPULATION_AF: (0.0,)}
    record = _record(info, tumor_ad=(56, 14))
    contaminated = FilteringContext.create(
        FilteringConfig(), normal_samples=["NORMAL"], contamination_by_sample={"TUMOR": 0.2}
    )
    assert _p(FilterKind.CONTAMINATION, record, contaminated) > 0.99
    assert _p(FilterKind.CONTAMINATION, record) == 0.0


def test_germline() -> None:
    germline = _record(
        {keys.TUMOR_LOD: (20.0,), keys.POPULATION_AF: (0.3,)},
        tumor_ad=(50, 50),
        tumor_attrs={keys.ALLELE_FRACTION: (0.5,)},
    )
    somatic = _record(
        {keys.TUMOR_LOD: (20.0,), keys.POPULATION_AF: (6.0,)},
        tumor_ad=(90, 10),
        tumor_attrs={keys.ALLELE_FRACTION: (0.1,)},
    )
    assert _p(FilterKind.GERMLINE, germline) > 0.99
    assert _p(FilterKind.GERMLINE, somatic) < 1e-6


def test_mitochondrial_filters() -> None:
    ctx = _ctx(mitochondria=True)
    assert _p(FilterKind.CHIMERIC_ORIGINAL_ALIGNMENT, _record({keys.ORIGINAL_CONTIG_MISMATCH: 30}), ctx) == 1.0
    assert _p(FilterKind.CHIMERIC_ORIGINAL_ALIGNMENT, _record({keys.ORIGINAL_CONTIG_MISMATCH: 5}), ctx) == 0.0
    low = _record({keys.TUMOR_LOD: (0.1,), keys.DEPTH: 100})
    high = _record({keys.TUMOR_LOD: (10.0,), keys.DEPTH: 100})
    assert _p(FilterKind.LOW_AVG_ALT_QUALITY, low, ctx) == 1.0
    assert _p(FilterKind.LOW_AVG_ALT_QUALITY, high, ctx) == 0.0


def test_malformed_values_score_zero_and_are_reported() -> None:
    errors = []
    record = _record({keys.TUMOR_LOD: (10.0,), keys.MEDIAN_BASE_QUALITY: (30,)})
    p = artifact_probability(
        FilterKind.BASE_QUALITY, record, _ctx(), on_error=lambda kind, e: errors.append((kind, e))
    )
    assert p == 0.0
    assert len(errors) == 1
    assert errors[0][0] is FilterKind.BASE_QUALITY
    assert isinstance(errors[0][1], IndexError)


def test_allele_count_mismatch_scores_zero_and_is_reported() -> None:
    errors = []
    record = _record(
        {keys.TUMOR_LOD: (20.0, 15.0), keys.POPULATION_AF: (6.0,)},
        tumor_ad=(50, 20, 15),
        normal_ad=(40, 0, 0),
        tumor_attrs={keys.ALLELE_FRACTION: (0.24, 0.18)},
        alleles=("A", "G", "T"),
    )
    p = artifact_probability(
        FilterKind.GERMLINE, record, _ctx(), on_error=lambda kind, e: errors.append((kind, e))
    )
    assert p == 0.0
    assert len(errors) == 1
    assert errors[0][0] is FilterKind.GERMLINE
    assert isinstance(errors[0][1], ValueError)
    assert not isinstance(errors[0][1], DimensionMismatch)
