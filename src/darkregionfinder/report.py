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
  <title>DarkRegionFinder Report</title>
  <style>
    body { font-family: Arial, Helvetica, sans-serif; margin: 24px; }
    code, pre { background: #f6f8fa; padding: 2px 4px; border-radius: 4px; }
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

<h1>DarkRegionFinder Report</h1>
<p class="small">Generated: {{ generated_at }}</p>

<h2>Run summary</h2>
<div class="grid">
  <div class="card">
    <h3>Inputs</h3>
    <table>
      <tr><th>Alignments</th><td><code>{{ run.alignment_path }}</code></td></tr>
      <tr><th>Reference</th><td><code>{{ run.reference_path }}</code></td></tr>
      <tr><th>Intervals</th><td>{{ run.intervals | join(", ") if run.intervals else "whole genome" }}</td></tr>
      <tr><th>Shards</th><td>{{ run.shards }}</td></tr>
      <tr><th>Loci assessed</th><td>{{ run.loci_assessed }}</td></tr>
      <tr><th>Runtime (s)</th><td>{{ "%.1f" | format(run.runtime_seconds) }}</td></tr>
    </table>
  </div>
  <div class="card">
    <h3>Thresholds</h3>
    <table>
      <tr><th>MAPQ threshold (&le;)</th><td>{{ config.mapq_threshold }}</td></tr>
      <tr><th>Min MAPQ mass (%)</th><td>{{ config.min_mapq_mass }}</td></tr>
      <tr><th>Min depth (&le;)</th><td>{{ config.min_depth }}</td></tr>
      <tr><th>Min region size</th><td>{{ config.min_region_size }}</td></tr>
      <tr><th>Exclusive regions</th><td>{{ config.exclusive_regions }}</td></tr>
    </table>
  </div>
</div>

<h2>Regions</h2>
<table>
  <tr><th>Category</th><th>Rows</th><th>Regions</th><th>Bases</th><th>Largest</th><th>Median length</th><th>Output</th></tr>
  {% for name, stats in categories.items() %}
  <tr>
    <td>{{ labels[name] }}</td>
    <td>{{ stats.rows }}</td>
    <td>{{ stats.regions }}</td>
    <td>{{ stats.bases }}</td>
    <td>{{ stats.largest_region }}</td>
    <td>{{ stats.median_region }}</td>
    <td><code>{{ run.outputs[name] }}</code></td>
  </tr>
  {% endfor %}
</table>

{% if run.ignored_contigs %}
<h2>Skipped contigs</h2>
<p>These contigs appear in the alignment header but not in the reference:</p>
<p><code>{{ run.ignored_contigs | join(", ") }}</code></p>
{% endif %}

{% if plots %}
<h2>Plots</h2>
<div class="grid">
  <div class="card">
    <h3>Region lengths</h3>
    <img src="{{ plots.length_hist }}" alt="region length histogram">
  </div>
  <div class="card">
    <h3>Bases per category</h3>
    <img src="{{ plots.bases }}" alt="bases per category">
  </div>
</div>
{% endif %}

<h2>Interpretation notes</h2>
<ul>
  <li>Each output row is a single base; consecutive rows form a region.</li>
  <li>Incomplete (reference <code>N</code>) bases are never reported as dark.</li>
  <li>With zero reads, the MAPQ percentage is -1 and the base is only dark by coverage.</li>
</ul>

<hr>
<p class="small">DarkRegionFinder {{ version }}</p>
</body>
</html>"""
)

_LABELS = {
    "incomplete": "Incomplete",
    "low_depth": "Low coverage (dark)",
    "low_mapq": "Low MAPQ (dark)",
}


def render_report(
    *,
    outdir: str | Path,
    version: str,
    run: Dict[str, Any],
    categories: Dict[str, Dict[str, Any]],
    plots: Dict[str, str] | None = None,
) -> Path:
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        run=run,
        config=run.get("config", {}),
        categories=categories,
        labels=_LABELS,
        plots=plots or {},
    )

    out_path = outdir / "report.html"
    out_path.write_text(html, encoding="utf-8")
    return out_path
