from somaticfilter.clustering import AlleleFractionClusterer
from somaticfilter.config import FilteringConfig
from somaticfilter.context import FilteringContext, build_segment_index, overlapping_segments
from somaticfilter.models import MinorAlleleFractionSegment, PhasedCall


def test_segment_overlap_queries() -> None:
    segments = [
        MinorAlleleFractionSegment("chr1", 1, 1000, 0.5),
        MinorAlleleFractionSegment("chr1", 500, 600, 0.2),
        MinorAlleleFractionSegment("chr1", 2000, 3000, 0.3),
        MinorAlleleFractionSegment("chr2", 1, 100, 0.4),
    ]
    index = build_segment_index(segments)

    assert [s.minor_allele_fraction for s in overlapping_segments(index, "chr1", 550)] == [0.5, 0.2]
    assert [s.minor_allele_fraction for s in overlapping_segments(index, "chr1", 1000)] == [0.5]
    assert overlapping_segments(index, "chr1", 1500) == []
    assert overlapping_segments(index, "chr3", 10) == []


def test_context_lookups() -> None:
    ctx = FilteringContext.create(
        FilteringConfig(contamination_estimate=0.05),
        normal_samples=["N"],
        contamination_by_sample={"T1": 0.1},
        segments_by_sample={"T1": [MinorAlleleFractionSegment("chr1", 1, 100, 0.3)]},
    )
    assert ctx.contamination("T1") == 0.1
    assert ctx.contamination("T2") == 0.05
    assert ctx.minor_allele_fraction("T1", "chr1", 50) == 0.3
    assert ctx.minor_allele_fraction("T1", "chr1", 500) is None
    assert ctx.minor_allele_fraction("T2", "chr1", 50) is None
    assert not ctx.is_second_pass


def test_second_pass_snapshot_leaves_first_untouched() -> None:
    first = FilteringContext.create(FilteringConfig(), normal_samples=["N"])
    calls = {"pid": PhasedCall(100, frozenset({"0|1"}))}
    second = first.for_second_pass(filtered_phased_calls=calls, af_clusterer=AlleleFractionClusterer([]))

    assert second.is_second_pass
    assert dict(second.filtered_phased_calls) == calls
    assert second.normal_samples == first.normal_samples
    assert not first.is_second_pass
    assert len(first.filtered_phased_calls) == 0

    # the snapshot keeps its own copy
    calls["other"] = PhasedCall(200, frozenset({"1|0"}))
    assert "other" not in second.filtered_phased_calls
