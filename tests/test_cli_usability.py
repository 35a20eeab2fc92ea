import json
import subprocess
import sys
from pathlib import Path

import pysam

from somaticfilter.toy_data import make_toy_data


def _run_cli(args: list[str]) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, "-m", "somaticfilter"] + args,
        check=False,
        capture_output=True,
        text=True,
    )


def test_quickstart_output() -> None:
    cp = _run_cli(["quickstart"])
    assert cp.returncode == 0
    assert "somaticfilter filter" in cp.stdout
    assert "--mitochondria" in cp.stdout


def test_make_toy_data_dry_run(tmp_path: Path) -> None:
    cp = _run_cli(["make-toy-data", "--outdir", str(tmp_path / "toy"), "--dry-run"])
    assert cp.returncode == 0
    assert "Would write toy data" in cp.stdout
    assert not (tmp_path / "toy").exists()


def test_filter_dry_run_does_not_write_outputs(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy", n_records=40)
    outdir = tmp_path / "filter"
    cp = _run_cli(["filter", "--vcf", toy["vcf"], "--outdir", str(outdir), "--dry-run"])
    assert cp.returncode == 0
    assert "Dry-run" in cp.stdout
    assert not (outdir / "summary.json").exists()


def test_make_toy_data_and_filter(tmp_path: Path) -> None:
    toy_dir = tmp_path / "toy"
    cp = _run_cli(["make-toy-data", "--outdir", str(toy_dir), "--n-records", "200"])
    assert cp.returncode == 0
    toy = json.loads(cp.stdout)
    assert toy["n_records"] == "200"

    outdir = tmp_path / "out"
    cp = _run_cli(
        [
            "filter",
            "--vcf",
            str(toy_dir / "toy_calls.vcf.gz"),
            "--contamination-table",
            str(toy_dir / "contamination.table"),
            "--tumor-segmentation",
            str(toy_dir / "segments.table"),
            "--outdir",
            str(outdir),
        ]
    )
    assert cp.returncode == 0, cp.stderr
    assert (outdir / "report.html").exists()
    assert (outdir / "filtering_stats.tsv").exists()
    assert (outdir / "plots" / "filter_counts.png").exists()
    assert (outdir / "logs" / "filter.log").exists()

    with pysam.VariantFile(str(outdir / "filtered.vcf.gz")) as vcf:
        assert sum(1 for _ in vcf) == 200


def test_unknown_normal_sample_message(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy", n_records=20)
    cp = _run_cli(
        [
            "filter",
            "--vcf",
            toy["vcf"],
            "--normal-sample",
            "NOT_A_SAMPLE",
            "--outdir",
            str(tmp_path / "out"),
            "--no-report",
        ]
    )
    assert cp.returncode == 2
    assert "Normal sample(s) not in VCF" in cp.stderr
    assert "See log:" in cp.stderr


def test_missing_vcf_is_a_usage_error(tmp_path: Path) -> None:
    cp = _run_cli(["filter", "--vcf", str(tmp_path / "missing.vcf.gz"), "--outdir", str(tmp_path / "out")])
    assert cp.returncode != 0
    assert "Path does not exist" in cp.stderr
