import json
from pathlib import Path

import pysam
import pytest

from somaticfilter import keys
from somaticfilter.config import FilteringConfig
from somaticfilter.filters import default_filters
from somaticfilter.models import Decision
from somaticfilter.tables import read_filter_stats
from somaticfilter.toy_data import NORMAL_SAMPLE, TUMOR_SAMPLE, make_toy_records, write_toy_vcf
from somaticfilter.vcf_io import FilteredVcfWriter, filter_vcf, iter_variant_records, read_normal_samples


@pytest.fixture()
def toy_vcf(tmp_path: Path):
    records = make_toy_records(80, seed=5)
    return records, write_toy_vcf(records, tmp_path / "toy.vcf.gz")


def test_read_records_back(toy_vcf) -> None:
    records, path = toy_vcf
    assert Path(str(path) + ".tbi").exists()

    with pysam.VariantFile(str(path)) as vcf:
        assert read_normal_samples(vcf.header) == [NORMAL_SAMPLE]

    back = list(iter_variant_records(path))
    assert len(back) == len(records)
    for original, read in zip(records, back):
        assert (read.contig, read.position, read.alleles) == (original.contig, original.position, original.alleles)
        assert read.sample(TUMOR_SAMPLE).allele_depths == original.sample(TUMOR_SAMPLE).allele_depths
        assert read.get_float_list(keys.TUMOR_LOD) == pytest.approx(original.get_float_list(keys.TUMOR_LOD), abs=1e-3)
        assert read.has_attribute(keys.IN_PON) == original.has_attribute(keys.IN_PON)
        assert read.sample(TUMOR_SAMPLE).has_attribute(keys.PHASING_ID) == original.sample(
            TUMOR_SAMPLE
        ).has_attribute(keys.PHASING_ID)


def test_filter_vcf_writes_outputs(toy_vcf, tmp_path: Path) -> None:
    records, path = toy_vcf
    outdir = tmp_path / "out"
    out_vcf = outdir / "filtered.vcf.gz"

    summary = filter_vcf(
        vcf_path=path, out_vcf=out_vcf, outdir=outdir, config=FilteringConfig(), progress=False
    )

    assert summary["normal_samples"] == [NORMAL_SAMPLE]
    assert (outdir / "summary.json").exists()
    on_disk = json.loads((outdir / "summary.json").read_text(encoding="utf-8"))
    assert on_disk["counts"] == summary["counts"]

    stats = read_filter_stats(outdir / "filtering_stats.tsv")
    assert [s.filter_name for s in stats] == summary["filters"]

    known = set(summary["filters"]) | {"PASS"}
    n_pass = 0
    with pysam.VariantFile(str(out_vcf)) as vcf:
        assert any(r.key == keys.FILTERING_STATUS for r in vcf.header.records)
        assert keys.GERMLINE_QUAL in vcf.header.info
        n = 0
        for rec in vcf:
            names = set(rec.filter.keys())
            assert names and names <= known
            n_pass += names == {"PASS"}
            assert rec.info[keys.GERMLINE_QUAL] >= 0
            n += 1
    assert n == len(records)
    assert n_pass == summary["counts"]["passing"]


def test_filter_vcf_rejects_unknown_normal(toy_vcf, tmp_path: Path) -> None:
    _, path = toy_vcf
    with pytest.raises(ValueError, match="not in VCF"):
        filter_vcf(
            vcf_path=path,
            out_vcf=tmp_path / "x.vcf.gz",
            outdir=tmp_path,
            config=FilteringConfig(),
            normal_samples=["NOT_A_SAMPLE"],
            progress=False,
        )


def test_filter_vcf_requires_a_tumor(toy_vcf, tmp_path: Path) -> None:
    _, path = toy_vcf
    with pytest.raises(ValueError, match="no tumor"):
        filter_vcf(
            vcf_path=path,
            out_vcf=tmp_path / "x.vcf.gz",
            outdir=tmp_path,
            config=FilteringConfig(),
            normal_samples=[NORMAL_SAMPLE, TUMOR_SAMPLE],
            progress=False,
        )


def test_writer_removes_partial_output_on_error(toy_vcf, tmp_path: Path) -> None:
    records, path = toy_vcf
    out = tmp_path / "partial.vcf.gz"
    with pytest.raises(ValueError, match="out of step"):
        with FilteredVcfWriter(path, out, default_filters(FilteringConfig())) as writer:
            writer.write(records[0], Decision(filters=()))
            writer.write(records[2], Decision(filters=()))

    assert writer.num_written == 1
    assert not out.exists()
    assert not Path(str(out) + ".tbi").exists()


def test_writer_indexes_complete_output(toy_vcf, tmp_path: Path) -> None:
    records, path = toy_vcf
    out = tmp_path / "complete.vcf.gz"
    with FilteredVcfWriter(path, out, default_filters(FilteringConfig())) as writer:
        for record in records:
            writer.write(record, Decision(filters=()))

    assert Path(str(out) + ".tbi").exists()
    with pysam.VariantFile(str(out)) as vcf:
        assert all(list(rec.filter) == ["PASS"] for rec in vcf)
