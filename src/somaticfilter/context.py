from __future__ import annotations

import bisect
import dataclasses
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional

from .clustering import AlleleFractionClusterer
from .config import FilteringConfig
from .models import MinorAlleleFractionSegment, PhasedCall


@dataclass(frozen=True)
class SegmentIndex:
    """Per-contig segment lookup structure."""

    starts: List[int]  # sorted 1-based starts
    max_ends: List[int]  # running maximum of segment ends, aligned with starts
    segments: List[MinorAlleleFractionSegment]  # aligned with starts


def build_segment_index(segments: Iterable[MinorAlleleFractionSegment]) -> Dict[str, SegmentIndex]:
    """Build a per-contig index for segment overlap queries."""
    by_contig: Dict[str, List[MinorAlleleFractionSegment]] = {}
    for s in segments:
        by_contig.setdefault(s.contig, []).append(s)

    index: Dict[str, SegmentIndex] = {}
    for contig, lst in by_contig.items():
        lst_sorted = sorted(lst, key=lambda x: (x.start, x.end))
        max_ends: List[int] = []
        running = -1
        for s in lst_sorted:
            running = max(running, s.end)
            max_ends.append(running)
        index[contig] = SegmentIndex(
            starts=[s.start for s in lst_sorted], max_ends=max_ends, segments=lst_sorted
        )
    return index


def overlapping_segments(
    index: Mapping[str, SegmentIndex], contig: str, position: int
) -> List[MinorAlleleFractionSegment]:
    """Segments containing ``contig:position``, in order of start."""
    seg_index = index.get(contig)
    if seg_index is None:
        return []
    out: List[MinorAlleleFractionSegment] = []
    j = bisect.bisect_right(seg_index.starts, position) - 1
    while j >= 0 and seg_index.max_ends[j] >= position:
        if seg_index.segments[j].end >= position:
            out.append(seg_index.segments[j])
        j -= 1
    out.reverse()
    return out


@dataclass(frozen=True)
class FilteringContext:
    """Read-only state shared by all filters during one pass.

    The first-pass snapshot carries no filtered phased calls and no fitted
    allele-fraction model. :meth:`for_second_pass` builds the second-pass
    snapshot; neither is modified after construction.
    """

    config: FilteringConfig
    normal_samples: FrozenSet[str] = frozenset()
    contamination_by_sample: Mapping[str, float] = field(default_factory=dict)
    segments_by_sample: Mapping[str, Mapping[str, SegmentIndex]] = field(default_factory=dict)
    filtered_phased_calls: Mapping[str, PhasedCall] = field(default_factory=dict)
    af_clusterer: Optional[AlleleFractionClusterer] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "normal_samples", frozenset(self.normal_samples))
        object.__setattr__(
            self, "contamination_by_sample", MappingProxyType(dict(self.contamination_by_sample))
        )
        object.__setattr__(self, "segments_by_sample", MappingProxyType(dict(self.segments_by_sample)))
        object.__setattr__(
            self, "filtered_phased_calls", MappingProxyType(dict(self.filtered_phased_calls))
        )

    @classmethod
    def create(
        cls,
        config: FilteringConfig,
        *,
        normal_samples: Iterable[str] = (),
        contamination_by_sample: Optional[Mapping[str, float]] = None,
        segments_by_sample: Optional[Mapping[str, Iterable[MinorAlleleFractionSegment]]] = None,
    ) -> "FilteringContext":
        """First-pass context from raw sample metadata."""
        indexed = {
            sample: build_segment_index(segments)
            for sample, segments in (segments_by_sample or {}).items()
        }
        return cls(
            config=config,
            normal_samples=frozenset(normal_samples),
            contamination_by_sample=dict(contamination_by_sample or {}),
            segments_by_sample=indexed,
        )

    @property
    def is_second_pass(self) -> bool:
        return self.af_clusterer is not None

    def contamination(self, sample: str) -> float:
        return float(self.contamination_by_sample.get(sample, self.config.contamination_estimate))

    def minor_allele_fraction(self, sample: str, contig: str, position: int) -> Optional[float]:
        """Minor allele fraction of the first segment overlapping the site, if any."""
        index = self.segments_by_sample.get(sample)
        if index is None:
            return None
        segments = overlapping_segments(index, contig, position)
        return segments[0].minor_allele_fraction if segments else None

    def for_second_pass(
        self,
        *,
        filtered_phased_calls: Mapping[str, PhasedCall],
        af_clusterer: AlleleFractionClusterer,
    ) -> "FilteringContext":
        return dataclasses.replace(
            self, filtered_phased_calls=dict(filtered_phased_calls), af_clusterer=af_clusterer
        )
