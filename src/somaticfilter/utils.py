from __future__ import annotations

import gzip
import json
import math
from pathlib import Path
from typing import Any, Sequence, TextIO

import numpy as np
from scipy.special import logsumexp

LOG10_E = math.log10(math.e)
LOG10_ONE_HALF = math.log10(0.5)

# Largest phred value written for a posterior of exactly zero.
MAX_PHRED = 9999


def clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def phred_to_error_prob(q: float) -> float:
    # Guard against negative values (can occur if qualities are missing).
    if q <= 0:
        return 1.0
    return 10 ** (-q / 10)


def error_prob_to_phred(p: float) -> int:
    """Phred-scale a probability, capped at :data:`MAX_PHRED` for p == 0."""
    if p <= 0.0:
        return MAX_PHRED
    return int(min(MAX_PHRED, round(-10.0 * math.log10(min(p, 1.0)))))


def log10sumlog10(values: Sequence[float]) -> float:
    arr = np.asarray(values, dtype=float)
    if arr.size == 0 or np.all(np.isneginf(arr)):
        return float("-inf")
    return float(logsumexp(arr / LOG10_E) * LOG10_E)


def normalize_from_log10(log10_values: Sequence[float]) -> np.ndarray:
    """Exponentiate and normalize log10 scores into probabilities summing to 1."""
    arr = np.asarray(log10_values, dtype=float)
    top = np.max(arr)
    if not np.isfinite(top):
        return np.full(arr.shape, 1.0 / arr.size)
    shifted = arr - top
    linear = np.power(10.0, shifted)
    return linear / linear.sum()


def xlog10x(x: np.ndarray) -> np.ndarray:
    x = np.asarray(x, dtype=float)
    out = np.zeros_like(x)
    mask = x > 0
    out[mask] = x[mask] * np.log10(x[mask])
    return out


def max_index(values: Sequence[float]) -> int:
    # First index of the maximum.
    return int(np.argmax(np.asarray(values, dtype=float)))


def ensure_outdir(path: str | Path) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def open_textmaybe_gzip(path: str | Path, mode: str = "rt") -> TextIO:
    p = str(path)
    if p.endswith(".gz"):
        return gzip.open(p, mode)  # type: ignore[return-value]
    return open(p, mode)


def write_json(path: str | Path, obj: Any) -> None:
    with open(path, "wt", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, sort_keys=True)
