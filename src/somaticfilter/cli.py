from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .config import FilteringConfig
from .plotting import plot_allele_fraction_clusters, plot_filter_counts, plot_probability_hist
from .report import render_report
from .toy_data import make_toy_data
from .utils import ensure_outdir
from .vcf_io import filter_vcf


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    msg = f"{err.__class__.__name__}: {err}"
    sys.stderr.write(msg + "\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def build_parser() -> argparse.ArgumentParser:
    defaults = FilteringConfig()
    p = argparse.ArgumentParser(
        prog="somaticfilter",
        description=(
            "somaticfilter: two-pass, FDR-calibrated artifact filtering of somatic variant calls. "
            "Scores every call with hard and probabilistic filters and picks the threshold that "
            "keeps the expected false discovery rate among PASS calls within bound."
        ),
    )
    p.add_argument("--version", action="version", version=f"somaticfilter {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # quickstart
    # -----------------
    sub.add_parser(
        "quickstart",
        help="Print ready-to-run recipes for common scenarios.",
    )

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a small tumor/normal VCF with injected artifacts for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--n-records", type=int, default=500, help="Number of calls to generate.")
    t.add_argument("--seed", type=int, default=7, help="Random seed.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    # -----------------
    # filter
    # -----------------
    f = sub.add_parser(
        "filter",
        help="Filter somatic calls in a VCF and write a filtered VCF, stats table and report.",
    )
    f.add_argument("--vcf", required=True, type=_path_exists, help="Unfiltered somatic VCF (.vcf/.vcf.gz).")
    f.add_argument("--outdir", required=True, help="Output directory.")
    f.add_argument(
        "--output",
        default=None,
        help="Filtered VCF path (default: outdir/filtered.vcf.gz).",
    )
    f.add_argument(
        "--stats",
        default=None,
        help="Filtering stats table path (default: outdir/filtering_stats.tsv).",
    )
    f.add_argument(
        "--normal-sample",
        action="append",
        default=None,
        help="Normal sample name; repeatable (default: ##normal_sample header lines).",
    )
    f.add_argument(
        "--contamination-table",
        action="append",
        default=[],
        type=_path_exists,
        help="Contamination table (sample/contamination/error); repeatable.",
    )
    f.add_argument(
        "--tumor-segmentation",
        action="append",
        default=[],
        type=_path_exists,
        help="Minor allele fraction segmentation table (#SAMPLE=<name> header); repeatable.",
    )

    # Calibration
    f.add_argument(
        "--max-false-discovery-rate",
        type=float,
        default=defaults.max_false_discovery_rate,
        help="Requested bound on the expected FDR among PASS calls.",
    )
    f.add_argument(
        "--log10-prior-somatic",
        type=float,
        default=defaults.log10_prior_somatic,
        help="log10 prior probability of a somatic event at a site.",
    )
    f.add_argument(
        "--first-pass-threshold",
        type=float,
        default=defaults.first_pass_threshold,
        help="Provisional artifact threshold for clustering data and filtered haplotypes.",
    )

    # Hard filter thresholds
    f.add_argument("--tumor-lod", type=float, default=defaults.tumor_lod_threshold, help="Minimum tumor log odds.")
    f.add_argument(
        "--normal-artifact-lod",
        type=float,
        default=defaults.normal_artifact_lod_threshold,
        help="Maximum negative normal artifact log odds.",
    )
    f.add_argument(
        "--min-median-base-quality",
        type=int,
        default=defaults.min_median_base_quality,
        help="Minimum median alt base quality.",
    )
    f.add_argument(
        "--min-median-mapping-quality",
        type=int,
        default=defaults.min_median_mapping_quality,
        help="Minimum median alt mapping quality.",
    )
    f.add_argument(
        "--unique-alt-read-count",
        type=int,
        default=defaults.unique_alt_read_count,
        help="Filter calls with at most this many deduplicated alt reads.",
    )
    f.add_argument(
        "--contamination-estimate",
        type=float,
        default=defaults.contamination_estimate,
        help="Contamination for samples without a contamination table.",
    )
    f.add_argument(
        "--max-events-in-region",
        type=int,
        default=defaults.max_events_in_region,
        help="Maximum events in a single assembly haplotype.",
    )
    f.add_argument(
        "--max-alt-allele-count",
        type=int,
        default=defaults.num_alt_alleles_threshold,
        help="Maximum alt alleles passing the tumor log odds threshold.",
    )
    f.add_argument(
        "--min-median-read-position",
        type=int,
        default=defaults.min_median_read_position,
        help="Minimum median distance of alt reads from read ends.",
    )
    f.add_argument(
        "--max-median-fragment-length-difference",
        type=int,
        default=defaults.max_median_fragment_length_difference,
        help="Maximum ref/alt median fragment length difference.",
    )
    f.add_argument(
        "--n-ratio",
        type=float,
        default=defaults.n_ratio,
        help="Filter calls whose N/alt read ratio reaches this value.",
    )
    f.add_argument(
        "--strict-strand-bias",
        action="store_true",
        help="Filter calls without alt reads on both strands.",
    )
    f.add_argument(
        "--min-slippage-length",
        type=int,
        default=defaults.min_pcr_slippage_bases,
        help="Minimum reference bases in an STR to consider PCR slippage.",
    )
    f.add_argument(
        "--pcr-slippage-rate",
        type=float,
        default=defaults.pcr_slippage_rate,
        help="Per-read PCR slippage rate.",
    )
    f.add_argument(
        "--distance-on-haplotype",
        type=int,
        default=defaults.max_distance_to_filtered_call,
        help="Maximum distance to a filtered call on the same haplotype.",
    )

    # Mitochondria
    f.add_argument("--mitochondria", action="store_true", help="Use the mitochondrial filter set.")
    f.add_argument(
        "--lod-divided-by-depth",
        type=float,
        default=defaults.lod_by_depth,
        help="Minimum tumor log odds per read (mitochondria).",
    )
    f.add_argument(
        "--non-mt-alts-divided-by-alts",
        type=float,
        default=defaults.non_mt_alt_by_alt,
        help="Maximum fraction of alt reads originally aligned off the mitochondria.",
    )

    # Allele fraction model
    f.add_argument(
        "--num-af-clusters",
        type=int,
        default=defaults.num_af_clusters,
        help="Number of allele fraction clusters seeded from the data.",
    )
    f.add_argument(
        "--clustering-iterations",
        type=int,
        default=defaults.clustering_iterations,
        help="EM iterations of the allele fraction model.",
    )
    f.add_argument(
        "--clustering-concentration",
        type=float,
        default=defaults.clustering_concentration,
        help="Dirichlet concentration over cluster weights.",
    )

    f.add_argument("--no-report", action="store_true", help="Skip plots and report.html.")
    f.add_argument("--dry-run", action="store_true", help="Validate inputs and print planned outputs.")
    f.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    return p


def _config_from_args(args: argparse.Namespace) -> FilteringConfig:
    return FilteringConfig(
        max_false_discovery_rate=float(args.max_false_discovery_rate),
        tumor_lod_threshold=float(args.tumor_lod),
        log10_prior_somatic=float(args.log10_prior_somatic),
        normal_artifact_lod_threshold=float(args.normal_artifact_lod),
        min_median_base_quality=int(args.min_median_base_quality),
        min_median_mapping_quality=int(args.min_median_mapping_quality),
        unique_alt_read_count=int(args.unique_alt_read_count),
        contamination_estimate=float(args.contamination_estimate),
        max_events_in_region=int(args.max_events_in_region),
        num_alt_alleles_threshold=int(args.max_alt_allele_count),
        min_median_read_position=int(args.min_median_read_position),
        max_median_fragment_length_difference=int(args.max_median_fragment_length_difference),
        n_ratio=float(args.n_ratio),
        strict_strand_bias=bool(args.strict_strand_bias),
        min_pcr_slippage_bases=int(args.min_slippage_length),
        pcr_slippage_rate=float(args.pcr_slippage_rate),
        max_distance_to_filtered_call=int(args.distance_on_haplotype),
        mitochondria=bool(args.mitochondria),
        lod_by_depth=float(args.lod_divided_by_depth),
        non_mt_alt_by_alt=float(args.non_mt_alts_divided_by_alts),
        num_af_clusters=int(args.num_af_clusters),
        clustering_iterations=int(args.clustering_iterations),
        clustering_concentration=float(args.clustering_concentration),
        first_pass_threshold=float(args.first_pass_threshold),
    )


# -----------------
# Command handlers
# -----------------

def cmd_quickstart() -> int:
    lines = [
        "somaticfilter quickstart (copy/paste):",
        "",
        "1) Tumor/normal VCF (normal named in ##normal_sample header):",
        "   somaticfilter filter \\",
        "     --vcf unfiltered.vcf.gz \\",
        "     --outdir results/",
        "   Outputs: results/filtered.vcf.gz, results/filtering_stats.tsv, results/report.html",
        "",
        "2) With contamination and segmentation tables, stricter FDR:",
        "   somaticfilter filter \\",
        "     --vcf unfiltered.vcf.gz \\",
        "     --contamination-table contamination.table \\",
        "     --tumor-segmentation segments.table \\",
        "     --max-false-discovery-rate 0.01 \\",
        "     --outdir results_strict/",
        "",
        "3) Mitochondrial calls:",
        "   somaticfilter filter \\",
        "     --vcf chrM.vcf.gz \\",
        "     --mitochondria \\",
        "     --outdir results_mt/",
        "",
        "Tip: run 'somaticfilter make-toy-data --outdir toy/' for a small example input,",
        "and use --dry-run to validate inputs without writing outputs.",
    ]
    print("\n".join(lines))
    return 0


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    summary = make_toy_data(outdir=outdir, n_records=int(args.n_records), seed=int(args.seed))
    print(json.dumps(summary, indent=2))
    return 0


def cmd_filter(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    log_path = _log_path(outdir, "filter.log")
    _setup_logging(args.verbose, logfile=None if args.dry_run else log_path)

    logger = logging.getLogger("somaticfilter")
    logger.info("somaticfilter %s", __version__)

    try:
        config = _config_from_args(args)
        out_vcf = Path(args.output) if args.output else outdir / "filtered.vcf.gz"
        stats_table = Path(args.stats) if args.stats else outdir / "filtering_stats.tsv"

        if args.dry_run:
            print("Dry-run: inputs look OK.")
            print("Planned outputs:")
            print(f"  filtered VCF -> {out_vcf}")
            print(f"  filtering stats -> {stats_table}")
            print(f"  summary.json -> {outdir / 'summary.json'}")
            if not args.no_report:
                print(f"  report.html -> {outdir / 'report.html'}")
            return 0

        outdir = ensure_outdir(outdir)

        run = filter_vcf(
            vcf_path=args.vcf,
            out_vcf=out_vcf,
            outdir=outdir,
            config=config,
            normal_samples=args.normal_sample,
            contamination_tables=args.contamination_table,
            segment_tables=args.tumor_segmentation,
            stats_table=stats_table,
            progress=True,
        )

        if args.no_report:
            print(str(out_vcf))
            return 0

        plots_dir = Path(outdir) / "plots"
        plots_dir.mkdir(parents=True, exist_ok=True)

        filter_counts_png = plots_dir / "filter_counts.png"
        probability_png = plots_dir / "probability_hist.png"
        clusters_png = plots_dir / "af_clusters.png"

        plot_filter_counts(filter_counts=run["filter_counts"], out_png=filter_counts_png)  # type: ignore[arg-type]
        plot_probability_hist(
            bin_edges=run["max_probability_hist"]["bin_edges"],  # type: ignore[index]
            counts=run["max_probability_hist"]["counts"],  # type: ignore[index]
            out_png=probability_png,
            threshold=float(run["threshold"]),  # type: ignore[arg-type]
        )
        plot_allele_fraction_clusters(model_summary=run["allele_fraction_model"], out_png=clusters_png)  # type: ignore[arg-type]

        plots_rel = {
            "filter_counts": str(Path("plots") / filter_counts_png.name),
            "probability_hist": str(Path("plots") / probability_png.name),
            "af_clusters": str(Path("plots") / clusters_png.name),
        }

        report_path = render_report(outdir=outdir, version=__version__, run=run, plots=plots_rel)

        logger.info("Report written: %s", report_path)
        print(str(report_path))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "quickstart":
        return cmd_quickstart()
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)
    if args.cmd == "filter":
        return cmd_filter(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
