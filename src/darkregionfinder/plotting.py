from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List

import matplotlib.pyplot as plt

logger = logging.getLogger(__name__)

_LABELS = {
    "incomplete": "Incomplete",
    "low_depth": "Low coverage",
    "low_mapq": "Low MAPQ",
}


def plot_region_length_hist(
    *,
    length_hists: Dict[str, Dict[str, List[int]]],
    out_png: str | Path,
    title: str = "Region length distribution",
) -> None:
    """Grouped bars: one group per length decade, one bar per category."""
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    names = list(length_hists)
    if not names:
        return
    edges = length_hists[names[0]]["bin_edges"]
    n_bins = len(edges) - 1
    width = 0.8 / max(1, len(names))

    plt.figure()
    for i, name in enumerate(names):
        counts = length_hists[name]["counts"]
        xs = [b + i * width for b in range(n_bins)]
        plt.bar(xs, counts, width=width, label=_LABELS.get(name, name))

    tick_labels = [f"{edges[b]:g}-{edges[b + 1]:g}" for b in range(n_bins)]
    plt.xticks([b + 0.4 - width / 2 for b in range(n_bins)], tick_labels, rotation=30, ha="right")
    plt.xlabel("Region length (bp)")
    plt.ylabel("Region count")
    plt.title(title)
    plt.legend()
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_bases_by_category(
    *,
    bases: Dict[str, int],
    out_png: str | Path,
    title: str = "Bases per category",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    labels = [_LABELS.get(k, k) for k in bases]
    values = [int(v) for v in bases.values()]

    plt.figure()
    plt.bar(labels, values)
    plt.ylabel("Bases")
    plt.title(title)
    plt.xticks(rotation=15, ha="right")
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()
