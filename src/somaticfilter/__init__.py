"""SomaticFilter: two-pass, FDR-calibrated filtering of somatic variant calls.

Public API is intentionally small; most users should use the CLI:

    somaticfilter filter --vcf calls.vcf.gz --outdir filtered/

Library users drive :class:`somaticfilter.engine.TwoPassFilter` directly.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
