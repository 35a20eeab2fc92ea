from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

import pysam

from . import keys
from .config import FilteringConfig
from .context import FilteringContext
from .engine import filter_variants
from .filters import FilterKind, default_filters
from .models import Decision, FilterStats, SampleEvidence, VariantRecord
from .tables import contamination_by_sample, segments_by_sample, write_filter_stats
from .utils import ensure_outdir, write_json

logger = logging.getLogger(__name__)

FILTER_DESCRIPTIONS: Dict[str, str] = {
    keys.TUMOR_LOD_FILTER: "Mutation does not meet likelihood threshold",
    keys.WEAK_EVIDENCE_FILTER: "Mutation does not meet likelihood threshold after allele fraction modeling",
    keys.BASE_QUALITY_FILTER: "alt median base quality",
    keys.MAPPING_QUALITY_FILTER: "ref - alt median mapping quality",
    keys.DUPLICATED_EVIDENCE_FILTER: "evidence for alt allele is overrepresented by apparent duplicates",
    keys.STRAND_ARTIFACT_FILTER: "Evidence for alt allele comes from one read direction only",
    keys.CONTAMINATION_FILTER: "contamination",
    keys.PANEL_OF_NORMALS_FILTER: "Blacklisted site in panel of normals",
    keys.ARTIFACT_IN_NORMAL_FILTER: "artifact_in_normal",
    keys.READ_ORIENTATION_FILTER: "orientation bias detected by the orientation bias mixture model",
    keys.CLUSTERED_EVENTS_FILTER: "Clustered events observed in the tumor",
    keys.MULTIALLELIC_FILTER: "Site filtered because too many alt alleles pass tumor LOD",
    keys.READ_POSITION_FILTER: "median distance of alt variants from end of reads",
    keys.FRAGMENT_LENGTH_FILTER: "abs(ref - alt) median fragment length",
    keys.N_RATIO_FILTER: "Ratio of N to alt exceeds specified ratio",
    keys.STRICT_STRAND_FILTER: "Evidence for alt allele is not represented in both directions",
    keys.STR_CONTRACTION_FILTER: "Site filtered due to contraction of short tandem repeat region",
    keys.BAD_HAPLOTYPE_FILTER: "Variant near filtered variant on same haplotype.",
    keys.GERMLINE_RISK_FILTER: "Evidence indicates this site is germline, not somatic",
    keys.CHIMERIC_ORIGINAL_ALIGNMENT_FILTER: "NuMT variant with too many alt reads originally from autosome",
    keys.LOW_AVG_ALT_QUALITY_FILTER: "Low average alt quality",
}

PHRED_INFO_DESCRIPTIONS: Dict[str, str] = {
    keys.CONTAMINATION_QUAL: "Phred-scaled qualities that alt allele are not due to contamination",
    keys.GERMLINE_QUAL: "Phred-scaled quality that alt alleles are not germline variants",
    keys.SOMATIC_EVIDENCE_QUAL: "Phred-scaled quality that alt alleles are not sequencing errors",
}


def read_normal_samples(header: pysam.VariantHeader) -> List[str]:
    """Sample names declared by ``##normal_sample=`` header lines."""
    out: List[str] = []
    for hrec in header.records:
        if hrec.key == keys.NORMAL_SAMPLE_HEADER and hrec.value:
            out.append(str(hrec.value))
    return out


def to_variant_record(rec: pysam.VariantRecord) -> VariantRecord:
    """Convert a pysam record into an immutable :class:`VariantRecord`."""
    alleles = tuple(rec.alleles or ())
    n_alleles = len(alleles)
    samples: List[SampleEvidence] = []
    for name in rec.samples:
        s = rec.samples[name]
        attributes: Dict[str, Any] = {}
        for key, value in s.items():
            if key in ("AD", "GT") or value is None:
                continue
            attributes[key] = value
        ad = s.get("AD") if "AD" in s else None
        if ad is None or len(ad) != n_alleles:
            depths = (0,) * n_alleles
        else:
            depths = tuple(int(d) if d is not None else 0 for d in ad)
        samples.append(SampleEvidence(str(name), depths, attributes))

    return VariantRecord(
        contig=str(rec.contig),
        position=int(rec.pos),
        alleles=alleles,
        attributes=dict(rec.info.items()),
        samples=tuple(samples),
        record_id=rec.id,
    )


def iter_variant_records(vcf_path: str | Path) -> Iterator[VariantRecord]:
    with pysam.VariantFile(str(vcf_path)) as vcf:
        for rec in vcf:
            yield to_variant_record(rec)


def add_filter_header_lines(header: pysam.VariantHeader, filters: Sequence[FilterKind]) -> None:
    """Declare every filter, phred INFO field and the filtering status line."""
    for kind in filters:
        name = kind.filter_name
        if name not in header.filters:
            header.filters.add(name, None, None, FILTER_DESCRIPTIONS.get(name, name))
        ann = kind.phred_annotation
        if ann is not None and ann not in header.info:
            header.info.add(ann, 1, "Integer", PHRED_INFO_DESCRIPTIONS.get(ann, ann))
    header.add_line(
        f"##{keys.FILTERING_STATUS}=These calls have been filtered by somaticfilter "
        "to label false positives with a list of failed filters and true positives with PASS."
    )


class FilteredVcfWriter:
    """Writes second-pass decisions into a copy of the input VCF.

    Records are read from ``vcf_path`` in the same order the decisions arrive;
    each decision replaces the FILTER column and sets the phred INFO fields.
    """

    def __init__(self, vcf_path: str | Path, out_path: str | Path, filters: Sequence[FilterKind]) -> None:
        self.out_path = Path(out_path)
        self._in = pysam.VariantFile(str(vcf_path))
        add_filter_header_lines(self._in.header, filters)
        mode = "wz" if self.out_path.name.endswith(".gz") else "w"
        self._out = pysam.VariantFile(str(self.out_path), mode, header=self._in.header)
        self._records = iter(self._in)
        self.num_written = 0

    def write(self, record: VariantRecord, decision: Decision) -> None:
        rec = next(self._records, None)
        if rec is None or rec.contig != record.contig or rec.pos != record.position:
            raise ValueError(f"Output VCF is out of step with the filtered records at {record.label}")
        rec.filter.clear()
        for name in decision.filters:
            rec.filter.add(name)
        if decision.is_pass:
            rec.filter.add("PASS")
        for ann, qual in decision.phred_posteriors.items():
            rec.info[ann] = int(qual)
        self._out.write(rec)
        self.num_written += 1

    def close(self, *, discard: bool = False) -> None:
        """Close both files; ``discard`` removes the partial output instead of indexing it."""
        self._out.close()
        self._in.close()
        if discard:
            self.out_path.unlink(missing_ok=True)
            Path(str(self.out_path) + ".tbi").unlink(missing_ok=True)
            logger.warning("Removed incomplete output %s", self.out_path)
        elif self.out_path.name.endswith(".gz"):
            pysam.tabix_index(str(self.out_path), preset="vcf", force=True)

    def __enter__(self) -> "FilteredVcfWriter":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close(discard=exc_type is not None)


def filter_vcf(
    *,
    vcf_path: str | Path,
    out_vcf: str | Path,
    outdir: str | Path,
    config: FilteringConfig,
    normal_samples: Optional[Iterable[str]] = None,
    contamination_tables: Iterable[str | Path] = (),
    segment_tables: Iterable[str | Path] = (),
    stats_table: Optional[str | Path] = None,
    progress: bool = True,
) -> Dict[str, object]:
    """Filter a VCF in two passes, write the filtered VCF, stats table and summary.json."""
    t0 = time.time()
    outdir_path = ensure_outdir(outdir)

    with pysam.VariantFile(str(vcf_path)) as vcf:
        samples = list(vcf.header.samples)
        declared_normals = read_normal_samples(vcf.header)
    normals = list(normal_samples) if normal_samples is not None else declared_normals
    unknown = [s for s in normals if s not in samples]
    if unknown:
        raise ValueError(f"Normal sample(s) not in VCF: {unknown}; VCF samples: {samples}")
    if not [s for s in samples if s not in normals]:
        raise ValueError("VCF has no tumor samples")
    logger.info("Tumor samples: %s; normal samples: %s", [s for s in samples if s not in normals], normals)

    context = FilteringContext.create(
        config,
        normal_samples=normals,
        contamination_by_sample=contamination_by_sample(contamination_tables),
        segments_by_sample=segments_by_sample(segment_tables),
    )
    filters = default_filters(config)

    with FilteredVcfWriter(vcf_path, out_vcf, filters) as writer:
        summary = filter_variants(
            lambda: iter_variant_records(vcf_path),
            config=config,
            context=context,
            filters=filters,
            on_decision=writer.write,
            progress=progress,
        )

    if stats_table is None:
        stats_table = outdir_path / "filtering_stats.tsv"
    write_filter_stats(stats_table, [FilterStats.from_row(r) for r in summary["filter_stats"]])  # type: ignore[union-attr]

    summary.update(
        {
            "vcf_path": str(vcf_path),
            "out_vcf": str(out_vcf),
            "stats_table": str(stats_table),
            "normal_samples": normals,
            "runtime_seconds": float(time.time() - t0),
        }
    )
    write_json(outdir_path / "summary.json", summary)
    return summary

