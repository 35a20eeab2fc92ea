from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from .errors import MissingAnnotation


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


class _Annotated:
    """Typed access to an ``attributes`` mapping (record INFO or sample FORMAT)."""

    attributes: Mapping[str, Any]

    def _where(self) -> str:
        return "record"

    def has_attribute(self, key: str) -> bool:
        value = self.attributes.get(key)
        if value is None:
            return False
        if isinstance(value, (list, tuple)):
            return len(value) > 0 and any(v is not None for v in value)
        return True

    def get_attribute(self, key: str, default: Any = None) -> Any:
        if not self.has_attribute(key):
            if default is None:
                raise MissingAnnotation(key, where=self._where())
            return default
        return self.attributes[key]

    def get_float_list(self, key: str, default: Optional[Sequence[float]] = None) -> List[float]:
        if not self.has_attribute(key):
            if default is None:
                raise MissingAnnotation(key, where=self._where())
            return [float(v) for v in default]
        return [float(v) for v in _as_list(self.attributes[key])]

    def get_int_list(self, key: str, default: Optional[Sequence[int]] = None) -> List[int]:
        if not self.has_attribute(key):
            if default is None:
                raise MissingAnnotation(key, where=self._where())
            return [int(v) for v in default]
        return [int(v) for v in _as_list(self.attributes[key])]

    def get_float(self, key: str, default: Optional[float] = None) -> float:
        values = self.get_float_list(key, None if default is None else [default])
        return values[0]

    def get_int(self, key: str, default: Optional[int] = None) -> int:
        values = self.get_int_list(key, None if default is None else [default])
        return values[0]

    def get_string(self, key: str, default: Optional[str] = None) -> str:
        value = self.get_attribute(key, default)
        if isinstance(value, (list, tuple)):
            return ",".join(str(v) for v in value)
        return str(value)


@dataclass(frozen=True)
class SampleEvidence(_Annotated):
    """Per-sample evidence for one variant record.

    Attributes
    ----------
    name:
        Sample name as present in the VCF header.
    allele_depths:
        Read depth per allele, index 0 is the reference.
    attributes:
        Read-only per-sample annotations (AF, PGT, PID, SB, ...).
    """

    name: str
    allele_depths: Tuple[int, ...]
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "allele_depths", tuple(int(d) for d in self.allele_depths))
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    def _where(self) -> str:
        return f"sample {self.name}"

    @property
    def depth(self) -> int:
        return sum(self.allele_depths)

    @property
    def alt_depth(self) -> int:
        return self.depth - (self.allele_depths[0] if self.allele_depths else 0)


@dataclass(frozen=True)
class VariantRecord(_Annotated):
    """One candidate somatic call.

    Coordinates are 1-based, as in the VCF ``POS`` column. Allele 0 is the
    reference. The record is never mutated by the filtering engine.
    """

    contig: str
    position: int
    alleles: Tuple[str, ...]
    attributes: Mapping[str, Any] = field(default_factory=dict)
    samples: Tuple[SampleEvidence, ...] = ()
    record_id: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "alleles", tuple(self.alleles))
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))
        object.__setattr__(self, "samples", tuple(self.samples))

    def _where(self) -> str:
        return f"{self.contig}:{self.position}"

    @property
    def n_alleles(self) -> int:
        return len(self.alleles)

    @property
    def is_biallelic(self) -> bool:
        return len(self.alleles) == 2

    @property
    def is_snp(self) -> bool:
        return len(self.alleles) >= 2 and all(len(a) == 1 for a in self.alleles)

    @property
    def label(self) -> str:
        return self.record_id or f"{self.contig}:{self.position}:{'/'.join(self.alleles)}"

    def sample(self, name: str) -> SampleEvidence:
        for s in self.samples:
            if s.name == name:
                return s
        raise KeyError(f"No sample {name!r} at {self._where()}")

    def tumor_samples(self, normal_samples: FrozenSet[str]) -> List[SampleEvidence]:
        return [s for s in self.samples if s.name not in normal_samples]

    def sum_allele_depths(
        self,
        normal_samples: FrozenSet[str],
        *,
        include_tumor: bool = True,
        include_normal: bool = False,
    ) -> List[int]:
        """Element-wise sum of allele depths over the selected samples."""
        totals = [0] * self.n_alleles
        for s in self.samples:
            is_normal = s.name in normal_samples
            if (is_normal and not include_normal) or (not is_normal and not include_tumor):
                continue
            if len(s.allele_depths) != self.n_alleles:
                raise ValueError(
                    f"Sample {s.name} has {len(s.allele_depths)} allele depths for "
                    f"{self.n_alleles} alleles at {self._where()}"
                )
            for i, d in enumerate(s.allele_depths):
                totals[i] += d
        return totals


@dataclass(frozen=True)
class Decision:
    """Filtering outcome for one record.

    ``filters`` lists the failed filter names in filter-set order; an empty
    tuple is a PASS. ``phred_posteriors`` maps INFO keys (CONTQ, GERMQ, ...)
    to the phred-scaled artifact posterior of the soft filter exposing them,
    and ``probabilities`` holds the raw artifact probability of every filter.
    """

    filters: Tuple[str, ...]
    phred_posteriors: Mapping[str, int] = field(default_factory=dict)
    probabilities: Mapping[str, float] = field(default_factory=dict)

    @property
    def is_pass(self) -> bool:
        return not self.filters

    @property
    def filter_field(self) -> str:
        return "PASS" if self.is_pass else ";".join(self.filters)


# Column order of the filtering-stats table.
FILTER_STATS_COLUMNS = (
    "filter_name",
    "threshold",
    "expected_fps",
    "expected_fdr",
    "requested_fdr",
    "num_passing_variants",
)


@dataclass(frozen=True)
class FilterStats:
    """Calibration outcome for one filter (or the combined decision)."""

    filter_name: str
    threshold: float
    expected_false_positives: float
    num_passing: int
    expected_fdr: float
    requested_fdr: float

    def to_row(self) -> Dict[str, Any]:
        return {
            "filter_name": self.filter_name,
            "threshold": float(self.threshold),
            "expected_fps": float(self.expected_false_positives),
            "expected_fdr": float(self.expected_fdr),
            "requested_fdr": float(self.requested_fdr),
            "num_passing_variants": int(self.num_passing),
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "FilterStats":
        return cls(
            filter_name=str(row["filter_name"]),
            threshold=float(row["threshold"]),
            expected_false_positives=float(row["expected_fps"]),
            num_passing=int(row["num_passing_variants"]),
            expected_fdr=float(row["expected_fdr"]),
            requested_fdr=float(row["requested_fdr"]),
        )


@dataclass(frozen=True)
class Count:
    """Alt and ref read counts of one call, the datum of allele-fraction clustering."""

    alt_count: int
    ref_count: int

    @property
    def total(self) -> int:
        return self.alt_count + self.ref_count

    @property
    def allele_fraction(self) -> float:
        return self.alt_count / self.total if self.total > 0 else 0.0


@dataclass(frozen=True)
class MinorAlleleFractionSegment:
    """A copy-number segment with its minor allele fraction (1-based, inclusive)."""

    contig: str
    start: int
    end: int
    minor_allele_fraction: float

    def overlaps(self, contig: str, position: int) -> bool:
        return self.contig == contig and self.start <= position <= self.end


@dataclass(frozen=True)
class PhasedCall:
    """Position and phased genotypes of a filtered call within one phase set."""

    position: int
    phased_genotypes: FrozenSet[str]
