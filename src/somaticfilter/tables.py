from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Tuple

from .models import FILTER_STATS_COLUMNS, FilterStats, MinorAlleleFractionSegment
from .utils import open_textmaybe_gzip

logger = logging.getLogger(__name__)

CONTAMINATION_COLUMNS = ("sample", "contamination", "error")
SEGMENT_COLUMNS = ("contig", "start", "end", "minor_allele_fraction")
_SAMPLE_PREFIX = "#SAMPLE="


def _data_lines(path: str | Path) -> Iterable[Tuple[int, List[str]]]:
    with open_textmaybe_gzip(path, "rt") as fh:
        for lineno, line in enumerate(fh, start=1):
            line = line.rstrip("\n\r")
            if line.strip():
                yield lineno, line.split("\t")


def _check_header(path: str | Path, lineno: int, fields: List[str], expected: Tuple[str, ...]) -> None:
    if tuple(fields[: len(expected)]) != expected:
        raise ValueError(
            f"{path}:{lineno}: expected header {'/'.join(expected)}, got {'/'.join(fields)}"
        )


def read_contamination_table(path: str | Path) -> Tuple[str, float, float]:
    """Read a contamination table with one data row.

    Returns
    -------
    tuple
        (sample, contamination, error).
    """
    rows = read_contamination_tables([path])
    if len(rows) != 1:
        raise ValueError(f"{path}: expected exactly one contamination row, found {len(rows)}")
    return rows[0]


def read_contamination_tables(paths: Iterable[str | Path]) -> List[Tuple[str, float, float]]:
    """Read (sample, contamination, error) rows from ``sample contamination error`` tables."""
    out: List[Tuple[str, float, float]] = []
    for path in paths:
        header_seen = False
        for lineno, fields in _data_lines(path):
            if fields[0].startswith("#"):
                continue
            if not header_seen:
                _check_header(path, lineno, fields, CONTAMINATION_COLUMNS)
                header_seen = True
                continue
            if len(fields) < 3:
                raise ValueError(f"{path}:{lineno}: expected 3 columns, got {len(fields)}")
            contamination = float(fields[1])
            if not 0.0 <= contamination <= 1.0:
                raise ValueError(f"{path}:{lineno}: contamination must be in [0, 1], got {contamination}")
            out.append((fields[0], contamination, float(fields[2])))
    return out


def contamination_by_sample(paths: Iterable[str | Path]) -> Dict[str, float]:
    out: Dict[str, float] = {}
    for sample, contamination, _ in read_contamination_tables(paths):
        if sample in out:
            logger.warning("Sample %s appears in more than one contamination table; using the last", sample)
        out[sample] = contamination
    return out


def read_segment_table(path: str | Path) -> Tuple[str, List[MinorAlleleFractionSegment]]:
    """Read a minor-allele-fraction segmentation.

    The file starts with a ``#SAMPLE=<name>`` line, then a
    ``contig start end minor_allele_fraction`` header and one segment per row.
    """
    sample = None
    header_seen = False
    segments: List[MinorAlleleFractionSegment] = []
    for lineno, fields in _data_lines(path):
        if fields[0].startswith(_SAMPLE_PREFIX):
            sample = fields[0][len(_SAMPLE_PREFIX) :].strip()
            continue
        if fields[0].startswith("#"):
            continue
        if not header_seen:
            _check_header(path, lineno, fields, SEGMENT_COLUMNS)
            header_seen = True
            continue
        if len(fields) < 4:
            raise ValueError(f"{path}:{lineno}: expected 4 columns, got {len(fields)}")
        start, end = int(fields[1]), int(fields[2])
        if end < start:
            raise ValueError(f"{path}:{lineno}: segment end {end} before start {start}")
        segments.append(MinorAlleleFractionSegment(fields[0], start, end, float(fields[3])))

    if sample is None:
        raise ValueError(f"{path}: missing {_SAMPLE_PREFIX}<name> line")
    logger.info("Loaded %d segments for sample %s", len(segments), sample)
    return sample, segments


def segments_by_sample(paths: Iterable[str | Path]) -> Dict[str, List[MinorAlleleFractionSegment]]:
    out: Dict[str, List[MinorAlleleFractionSegment]] = {}
    for path in paths:
        sample, segments = read_segment_table(path)
        out.setdefault(sample, []).extend(segments)
    return out


def write_filter_stats(path: str | Path, stats: Iterable[FilterStats]) -> None:
    with open_textmaybe_gzip(path, "wt") as fh:
        fh.write("\t".join(FILTER_STATS_COLUMNS) + "\n")
        for s in stats:
            row = s.to_row()
            fh.write(
                f"{row['filter_name']}\t{row['threshold']:.6g}\t{row['expected_fps']:.6g}\t"
                f"{row['expected_fdr']:.6g}\t{row['requested_fdr']:.6g}\t{row['num_passing_variants']}\n"
            )


def read_filter_stats(path: str | Path) -> List[FilterStats]:
    out: List[FilterStats] = []
    header_seen = False
    for lineno, fields in _data_lines(path):
        if not header_seen:
            _check_header(path, lineno, fields, FILTER_STATS_COLUMNS)
            header_seen = True
            continue
        out.append(FilterStats.from_row(dict(zip(FILTER_STATS_COLUMNS, fields))))
    return out
