from __future__ import annotations

import math
from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple

import numpy as np
import pysam

from . import keys
from .models import SampleEvidence, VariantRecord
from .utils import ensure_outdir, write_json

TUMOR_SAMPLE = "TUMOR"
NORMAL_SAMPLE = "NORMAL"
CONTIG = "chr1"
CONTIG_LENGTH = 10_000_000
TOY_CONTAMINATION = 0.01
TOY_MINOR_ALLELE_FRACTION = 0.45

# Fraction of records of each kind; the remainder are clean somatic calls.
ARTIFACT_RATES: Dict[str, float] = {
    "weak": 0.10,
    "germline": 0.07,
    "panel_of_normals": 0.05,
    "strand": 0.05,
    "normal_artifact": 0.05,
    "orientation": 0.05,
    "base_quality": 0.03,
    "multiallelic": 0.02,
}

_BASES = "ACGT"
_SEQUENCING_ERROR = 1e-3

# (key, number, type, description)
_INFO_HEADER: List[Tuple[str, Any, str, str]] = [
    (keys.TUMOR_LOD, "A", "Float", "Log 10 likelihood ratio score of variant existing versus not existing"),
    (keys.NORMAL_LOD, "A", "Float", "Normal log 10 likelihood ratio of diploid het or hom alt genotypes"),
    (keys.NORMAL_ARTIFACT_LOD, "A", "Float", "Negative log 10 odds of artifact in normal"),
    (keys.POPULATION_AF, "A", "Float", "negative log 10 population allele frequencies of alt alleles"),
    (keys.MEDIAN_BASE_QUALITY, "R", "Integer", "median base quality by allele"),
    (keys.MEDIAN_MAPPING_QUALITY, "R", "Integer", "median mapping quality by allele"),
    (keys.MEDIAN_READ_POSITION, "A", "Integer", "median distance from end of read"),
    (keys.MEDIAN_FRAGMENT_LENGTH, "R", "Integer", "median fragment length by allele"),
    (keys.EVENT_COUNT_IN_HAPLOTYPE, 1, "Integer", "Number of events in this haplotype"),
    (keys.UNIQUE_ALT_READ_COUNT, 1, "Integer", "Number of ALT reads with unique start and mate end positions"),
    (keys.STRAND_ARTIFACT_POSTERIOR, 3, "Float", "posterior probabilities of forward artifact, reverse artifact, none"),
    (keys.STRAND_ARTIFACT_AF, 3, "Float", "MAP allele fractions under forward artifact, reverse artifact, none"),
    (keys.IN_PON, 0, "Flag", "site found in panel of normals"),
    (keys.DEPTH, 1, "Integer", "Approximate read depth"),
]

_FORMAT_HEADER: List[Tuple[str, Any, str, str]] = [
    ("GT", 1, "String", "Genotype"),
    ("AD", "R", "Integer", "Allelic depths for the ref and alt alleles"),
    (keys.ALLELE_FRACTION, "A", "Float", "Allele fractions of alternate alleles in the tumor"),
    ("DP", 1, "Integer", "Approximate read depth"),
    (keys.PHASING_GT, 1, "String", "Physical phasing haplotype information"),
    (keys.PHASING_ID, 1, "String", "Physical phasing ID information"),
    (keys.STRAND_BIAS_BY_SAMPLE, 4, "Integer", "Per-sample component statistics which comprise the strand bias test"),
    (keys.READ_ORIENTATION_POSTERIOR, 1, "Float", "posterior probability of read orientation artifact"),
    (keys.READ_ORIENTATION_PRIOR, 1, "Float", "prior probability of read orientation artifact"),
]


def _count_log10(count: int, p: float) -> float:
    return 0.0 if count == 0 else count * math.log10(p)


def tumor_log_odds(alt: int, depth: int, error: float = _SEQUENCING_ERROR) -> float:
    """log10 odds of a variant at the observed allele fraction versus sequencing error."""
    if alt == 0 or depth == 0:
        return 0.0
    f = alt / depth
    ref = depth - alt
    return (_count_log10(alt, f) + _count_log10(ref, 1.0 - f)) - (
        _count_log10(alt, error) + _count_log10(ref, 1.0 - error)
    )


def _pick_kind(u: float) -> str:
    cumulative = 0.0
    for kind, rate in ARTIFACT_RATES.items():
        cumulative += rate
        if u < cumulative:
            return kind
    return "somatic"


def _make_record(rng: np.random.Generator, kind: str, position: int) -> VariantRecord:
    ref_base = _BASES[int(rng.integers(4))]
    alts = [b for b in _BASES if b != ref_base]
    n_alts = 2 if kind == "multiallelic" else 1
    alt_bases = [alts[i] for i in rng.choice(3, size=n_alts, replace=False)]
    alleles = (ref_base, *alt_bases)

    tumor_depth = int(40 + rng.poisson(40))
    normal_depth = int(30 + rng.poisson(20))

    if kind == "weak":
        af = 0.02
    elif kind == "germline":
        af = 0.5
    else:
        af = float(rng.choice([0.08, 0.2, 0.4]))

    tumor_alts = [int(rng.binomial(tumor_depth, af / n_alts)) for _ in range(n_alts)]
    tumor_ref = tumor_depth - sum(tumor_alts)
    if kind == "germline":
        normal_alts = [int(rng.binomial(normal_depth, 0.5))]
    elif kind == "normal_artifact":
        normal_alts = [int(rng.binomial(normal_depth, 0.8 * af))]
    else:
        normal_alts = [0] * n_alts
    normal_ref = normal_depth - sum(normal_alts)

    tlod = [round(tumor_log_odds(a, tumor_depth), 3) for a in tumor_alts]
    info: Dict[str, Any] = {
        keys.TUMOR_LOD: tuple(tlod),
        keys.NORMAL_LOD: tuple(
            round(-0.3 * normal_depth, 3) if kind == "germline" else round(0.3 * normal_depth, 3)
            for _ in range(n_alts)
        ),
        keys.NORMAL_ARTIFACT_LOD: tuple(-2.5 if kind == "normal_artifact" else 0.25 * normal_depth for _ in range(n_alts)),
        keys.POPULATION_AF: tuple(0.5 if kind == "germline" else 6.0 for _ in range(n_alts)),
        keys.MEDIAN_BASE_QUALITY: (30,) + tuple(12 if kind == "base_quality" else 30 for _ in range(n_alts)),
        keys.MEDIAN_MAPPING_QUALITY: (60,) * (n_alts + 1),
        keys.MEDIAN_READ_POSITION: (int(rng.integers(10, 40)),) * n_alts,
        keys.MEDIAN_FRAGMENT_LENGTH: (300,) + (int(rng.integers(280, 320)),) * n_alts,
        keys.EVENT_COUNT_IN_HAPLOTYPE: 1,
        keys.UNIQUE_ALT_READ_COUNT: max(1, sum(tumor_alts) // 2),
        keys.DEPTH: tumor_depth + normal_depth,
    }
    if kind == "strand":
        info[keys.STRAND_ARTIFACT_POSTERIOR] = (0.995, 0.003, 0.002)
        info[keys.STRAND_ARTIFACT_AF] = (0.001, 0.1, 0.1)
    else:
        info[keys.STRAND_ARTIFACT_POSTERIOR] = (0.01, 0.01, 0.98)
        info[keys.STRAND_ARTIFACT_AF] = (0.0, 0.0, round(af, 3))
    if kind == "panel_of_normals":
        info[keys.IN_PON] = True

    tumor_attributes: Dict[str, Any] = {
        keys.ALLELE_FRACTION: tuple(round(a / tumor_depth, 4) for a in tumor_alts),
        keys.STRAND_BIAS_BY_SAMPLE: (
            tumor_ref // 2,
            tumor_ref - tumor_ref // 2,
            sum(tumor_alts) // 2,
            sum(tumor_alts) - sum(tumor_alts) // 2,
        ),
    }
    if kind == "orientation":
        tumor_attributes[keys.READ_ORIENTATION_POSTERIOR] = 0.97
        tumor_attributes[keys.READ_ORIENTATION_PRIOR] = 0.01

    normal_attributes: Dict[str, Any] = {
        keys.ALLELE_FRACTION: tuple(round(a / normal_depth, 4) for a in normal_alts),
    }

    return VariantRecord(
        contig=CONTIG,
        position=position,
        alleles=alleles,
        attributes=info,
        samples=(
            SampleEvidence(TUMOR_SAMPLE, (tumor_ref, *tumor_alts), tumor_attributes),
            SampleEvidence(NORMAL_SAMPLE, (normal_ref, *normal_alts), normal_attributes),
        ),
    )


def _with_phasing(record: VariantRecord, pid: str, pgt: str) -> VariantRecord:
    samples = []
    for s in record.samples:
        if s.name == TUMOR_SAMPLE:
            attributes = dict(s.attributes)
            attributes[keys.PHASING_ID] = pid
            attributes[keys.PHASING_GT] = pgt
            s = SampleEvidence(s.name, s.allele_depths, attributes)
        samples.append(s)
    return VariantRecord(record.contig, record.position, record.alleles, record.attributes, tuple(samples))


def make_toy_records(n_records: int = 500, *, seed: int = 7) -> List[VariantRecord]:
    """Deterministic synthetic tumor/normal calls with injected artifacts.

    Every panel-of-normals artifact is phased with a clean-looking call 50 bp
    downstream, which the filtered-haplotype filter should catch.
    """
    rng = np.random.default_rng(seed)
    records: List[VariantRecord] = []
    position = 1000
    while len(records) < n_records:
        kind = _pick_kind(float(rng.random()))
        record = _make_record(rng, kind, position)
        if kind == "panel_of_normals" and len(records) + 1 < n_records:
            pid = f"{position}_{record.alleles[0]}_{record.alleles[1]}"
            records.append(_with_phasing(record, pid, "0|1"))
            records.append(_with_phasing(_make_record(rng, "somatic", position + 50), pid, "0|1"))
        else:
            records.append(record)
        position += 1000
    return records


def write_toy_vcf(records: Iterable[VariantRecord], path: str | Path) -> Path:
    """Write records as a VCF (bgzipped and indexed when ``path`` ends in .gz)."""
    path = Path(path)
    header = pysam.VariantHeader()
    header.add_meta("fileformat", "VCFv4.2")
    header.add_line(f"##{keys.NORMAL_SAMPLE_HEADER}={NORMAL_SAMPLE}")
    header.add_line(f"##{keys.TUMOR_SAMPLE_HEADER}={TUMOR_SAMPLE}")
    header.contigs.add(CONTIG, length=CONTIG_LENGTH)
    for key, number, typ, description in _INFO_HEADER:
        header.info.add(key, number, typ, description)
    for key, number, typ, description in _FORMAT_HEADER:
        header.formats.add(key, number, typ, description)
    header.add_sample(TUMOR_SAMPLE)
    header.add_sample(NORMAL_SAMPLE)

    plain = path.with_suffix("") if path.name.endswith(".gz") else path
    with pysam.VariantFile(str(plain), "w", header=header) as vcf:
        for i, r in enumerate(records):
            rec = vcf.new_record(
                contig=r.contig,
                start=r.position - 1,
                stop=r.position - 1 + len(r.alleles[0]),
                alleles=r.alleles,
                id=r.record_id or f"toy{i}",
                filter="PASS",
            )
            for key, value in r.attributes.items():
                rec.info[key] = value
            for s in r.samples:
                sample = rec.samples[s.name]
                sample["GT"] = (0, 1) if s.name == TUMOR_SAMPLE else (0, 0)
                sample["AD"] = s.allele_depths
                sample["DP"] = s.depth
                for key, value in s.attributes.items():
                    sample[key] = value
            vcf.write(rec)

    if plain != path:
        pysam.tabix_compress(str(plain), str(path), force=True)
        pysam.tabix_index(str(path), preset="vcf", force=True)
        plain.unlink()
    return path


def make_toy_data(*, outdir: str | Path, n_records: int = 500, seed: int = 7) -> Dict[str, str]:
    """Create a small tumor/normal VCF plus contamination and segmentation tables.

    The outputs include:
    - toy_calls.vcf.gz (+ .tbi)
    - contamination.table
    - segments.table

    Returns
    -------
    dict
        Paths to the generated files.
    """
    outdir_p = ensure_outdir(outdir)

    records = make_toy_records(n_records, seed=seed)
    vcf_gz = write_toy_vcf(records, outdir_p / "toy_calls.vcf.gz")

    contamination_table = outdir_p / "contamination.table"
    contamination_table.write_text(
        f"sample\tcontamination\terror\n{TUMOR_SAMPLE}\t{TOY_CONTAMINATION}\t0.002\n", encoding="utf-8"
    )

    segments_table = outdir_p / "segments.table"
    segments_table.write_text(
        f"#SAMPLE={TUMOR_SAMPLE}\n"
        "contig\tstart\tend\tminor_allele_fraction\n"
        f"{CONTIG}\t1\t{CONTIG_LENGTH}\t{TOY_MINOR_ALLELE_FRACTION}\n",
        encoding="utf-8",
    )

    summary = {
        "vcf": str(vcf_gz),
        "contamination_table": str(contamination_table),
        "segments_table": str(segments_table),
        "n_records": str(len(records)),
        "outdir": str(outdir_p),
    }

    write_json(outdir_p / "toy_summary.json", summary)
    return summary
