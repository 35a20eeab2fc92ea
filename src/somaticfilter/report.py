from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Dict

from jinja2 import Template

logger = logging.getLogger(__name__)


_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>somaticfilter Report</title>
  <style>
    body { font-family: Arial, Helvetica, sans-serif; margin: 24px; }
    code, pre { background: #f6f8fa; padding: 2px 4px; border-radius: 4px; }
    pre { padding: 12px; overflow-x: auto; }
    h1, h2, h3 { margin-top: 1.2em; }
    table { border-collapse: collapse; margin-top: 0.6em; }
    th, td { border: 1px solid #ddd; padding: 8px; }
    th { background: #f2f2f2; text-align: left; }
    .grid { display: grid; grid-template-columns: 1fr 1fr; gap: 16px; }
    .card { border: 1px solid #ddd; border-radius: 8px; padding: 12px; }
    .small { color: #666; font-size: 0.9em; }
    img { max-width: 100%; height: auto; border: 1px solid #eee; border-radius: 6px; }
  </style>
</head>
<body>

<h1>somaticfilter Report</h1>
<p class="small">Generated: {{ generated_at }}</p>

<h2>Run summary</h2>
<div class="grid">
  <div class="card">
    <h3>Inputs</h3>
    <table>
      <tr><th>VCF</th><td><code>{{ vcf_path }}</code></td></tr>
      <tr><th>Normal samples</th><td><code>{{ normal_samples | join(", ") if normal_samples else "none" }}</code></td></tr>
      <tr><th>Mode</th><td>{{ "mitochondria" if config.mitochondria else "nuclear" }}</td></tr>
    </table>
  </div>
  <div class="card">
    <h3>Calibration</h3>
    <table>
      <tr><th>Requested FDR</th><td>{{ config.max_false_discovery_rate }}</td></tr>
      <tr><th>Artifact probability threshold</th><td>{{ "%.4g" | format(threshold) }}</td></tr>
      <tr><th>Expected passing (first pass)</th><td>{{ combined.num_passing_variants }}</td></tr>
      <tr><th>Expected FDR (first pass)</th><td>{{ "%.4g" | format(combined.expected_fdr) }}</td></tr>
    </table>
  </div>
</div>

<h2>Calls</h2>
<table>
  <tr><th>Total calls</th><td>{{ counts.records }}</td></tr>
  <tr><th>PASS</th><td>{{ counts.passing }}</td></tr>
  <tr><th>Filtered</th><td>{{ counts.filtered }}</td></tr>
  <tr><th>Allele fraction clustering data</th><td>{{ counts.clustering_data }}</td></tr>
  <tr><th>Filtered phase sets</th><td>{{ counts.filtered_phase_sets }}</td></tr>
</table>

<h2>Filters</h2>
<table>
  <tr><th>Filter</th><th>Calls failing</th><th>Expected FPs among PASS</th><th>Expected FDR</th></tr>
  {% for row in filter_stats %}
  <tr>
    <td><code>{{ row.filter_name }}</code></td>
    <td>{{ filter_counts.get(row.filter_name, 0) }}</td>
    <td>{{ "%.3f" | format(row.expected_fps) }}</td>
    <td>{{ "%.4g" | format(row.expected_fdr) }}</td>
  </tr>
  {% endfor %}
</table>

<h2>Plots</h2>

<div class="grid">
  <div class="card">
    <h3>Filter counts</h3>
    <img src="{{ plots.filter_counts }}" alt="filter counts">
  </div>
  <div class="card">
    <h3>Artifact probability distribution</h3>
    <img src="{{ plots.probability_hist }}" alt="artifact probability histogram">
  </div>
</div>

<div class="grid" style="margin-top:16px;">
  <div class="card">
    <h3>Allele fraction model</h3>
    <img src="{{ plots.af_clusters }}" alt="allele fraction clusters">
  </div>
</div>

<h2>Outputs</h2>
<ul>
  <li><code>{{ out_vcf }}</code> (filtered VCF)</li>
  <li><code>{{ stats_table }}</code> (filtering stats)</li>
  <li><code>summary.json</code> (machine-readable summary)</li>
</ul>

<h2>Interpretation notes</h2>
<ul>
  <li>The threshold is chosen on the first pass so that the expected fraction of artifacts among PASS calls stays within the requested FDR.</li>
  <li>Expected FPs are sums of artifact probabilities over PASS calls; they are estimates, not counts.</li>
  <li>Filters whose annotations are absent from the input abstain and never fail a call.</li>
</ul>

<hr>
<p class="small">somaticfilter {{ version }}</p>
</body>
</html>"""
)


def render_report(
    *,
    outdir: str | Path,
    version: str,
    run: Dict[str, Any],
    plots: Dict[str, str],
) -> Path:
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        vcf_path=run.get("vcf_path"),
        out_vcf=run.get("out_vcf"),
        stats_table=run.get("stats_table"),
        normal_samples=run.get("normal_samples", []),
        config=run.get("config", {}),
        threshold=float(run.get("threshold", 1.0)),
        combined=run.get("combined_calibration", {}),
        counts=run.get("counts", {}),
        filter_stats=run.get("filter_stats", []),
        filter_counts=run.get("filter_counts", {}),
        plots=plots,
    )

    out_path = outdir / "report.html"
    out_path.write_text(html, encoding="utf-8")
    return out_path
