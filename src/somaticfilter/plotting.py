from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

import matplotlib.pyplot as plt

logger = logging.getLogger(__name__)


def plot_probability_hist(
    *,
    bin_edges: List[float],
    counts: List[int],
    out_png: str | Path,
    threshold: Optional[float] = None,
    title: str = "Maximum artifact probability per call",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)
    if len(bin_edges) != len(counts) + 1:
        raise ValueError("bin_edges must have length len(counts)+1")

    widths = [bin_edges[i + 1] - bin_edges[i] for i in range(len(counts))]
    centers = [bin_edges[i] + widths[i] / 2.0 for i in range(len(counts))]

    plt.figure()
    plt.bar(centers, counts, width=widths, align="center")
    if threshold is not None:
        plt.axvline(threshold, color="red", linestyle="--", label=f"threshold {threshold:.3g}")
        plt.legend()
    plt.xlabel("Artifact probability")
    plt.ylabel("Variant count")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_filter_counts(
    *,
    filter_counts: Dict[str, int],
    out_png: str | Path,
    title: str = "Calls failing each filter",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    labels = list(filter_counts.keys())
    values = [int(filter_counts[k]) for k in labels]

    plt.figure(figsize=(8, 4.8))
    plt.bar(labels, values)
    plt.ylabel("Variant count")
    plt.title(title)
    plt.xticks(rotation=45, ha="right")
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_allele_fraction_clusters(
    *,
    model_summary: Dict[str, object],
    out_png: str | Path,
    title: str = "Allele fraction clusters",
) -> None:
    """Cluster means against their occupancy weights.

    Parameters
    ----------
    model_summary:
        Dict as produced by ``AlleleFractionClusterer.summary``.
    """
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    clusters = list(model_summary.get("clusters", []))  # type: ignore[call-overload]
    signal = [c for c in clusters if not c["background"]]
    background = [c for c in clusters if c["background"]]

    plt.figure()
    if signal:
        plt.bar([c["mean"] for c in signal], [c["weight"] for c in signal], width=0.01, label="signal")
    for c in background:
        plt.axvline(c["mean"], color="grey", linestyle=":", label=f"background (w={c['weight']:.2f})")
    plt.xlim(0.0, 1.0)
    plt.xlabel("Allele fraction")
    plt.ylabel("Cluster weight")
    plt.title(title)
    if clusters:
        plt.legend()
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()
