from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterator, List, Tuple

import numpy as np

from .utils import open_textmaybe_gzip

logger = logging.getLogger(__name__)

# Region length bin edges: 1, 10, 100, ... 1e9 bases
LENGTH_BIN_EDGES: List[int] = [10**k for k in range(10)]


def iter_bed_rows(path: str | Path) -> Iterator[Tuple[str, int, int]]:
    with open_textmaybe_gzip(path, "rt") as fh:
        for line in fh:
            if not line.strip() or line.startswith("#"):
                continue
            fields = line.split("\t", 3)
            yield fields[0], int(fields[1]), int(fields[2])


def merge_rows(rows: Iterator[Tuple[str, int, int]]) -> Iterator[Tuple[str, int, int]]:
    """Collapse per-locus rows into regions (rows touching on the same contig)."""
    current = None
    for contig, start, end in rows:
        if current is not None and current[0] == contig and start <= current[2]:
            current = (contig, current[1], max(current[2], end))
            continue
        if current is not None:
            yield current
        current = (contig, start, end)
    if current is not None:
        yield current


def summarize_bed(path: str | Path) -> Dict[str, object]:
    """Row, region and base counts plus a region length histogram for one output."""
    n_rows = 0

    def counted():
        nonlocal n_rows
        for row in iter_bed_rows(path):
            n_rows += 1
            yield row

    lengths: List[int] = []
    bases_by_contig: Dict[str, int] = {}
    for contig, start, end in merge_rows(counted()):
        length = end - start
        lengths.append(length)
        bases_by_contig[contig] = bases_by_contig.get(contig, 0) + length

    arr = np.asarray(lengths, dtype=np.int64)
    counts, _ = np.histogram(arr, bins=LENGTH_BIN_EDGES)

    return {
        "rows": n_rows,
        "regions": int(arr.size),
        "bases": int(arr.sum()) if arr.size else 0,
        "largest_region": int(arr.max()) if arr.size else 0,
        "median_region": float(np.median(arr)) if arr.size else 0.0,
        "bases_by_contig": bases_by_contig,
        "length_hist": {
            "bin_edges": LENGTH_BIN_EDGES,
            "counts": counts.tolist(),
        },
    }
