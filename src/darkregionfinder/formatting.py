"""BED row formatting.

Every output is one row per locus of a qualifying run. Coordinates are
converted from the 1-based positions of the pileup to 0-based half-open BED.
"""

from __future__ import annotations

from typing import List

from .models import Locus, LocusClassification, PileupStats, RegionCategory

INCOMPLETE_COLUMNS: List[str] = ["chrom", "start", "end"]

DARK_COLUMNS: List[str] = [
    "chrom",
    "start",
    "end",
    "nMapQBelowThreshold",
    "depth",
    "percMapQBelowThreshold",
    "nDeletedInRecord",
    "totalDepthIncludingIndels",
]


def header_line(category: RegionCategory) -> str:
    cols = INCOMPLETE_COLUMNS if category is RegionCategory.INCOMPLETE else DARK_COLUMNS
    return "#" + "\t".join(cols) + "\n"


def format_incomplete(locus: Locus) -> str:
    return f"{locus.contig}\t{locus.position - 1}\t{locus.position}\n"


def format_dark(locus: Locus, stats: PileupStats, cls: LocusClassification) -> str:
    return (
        f"{locus.contig}\t{locus.position - 1}\t{locus.position}\t"
        f"{cls.n_mapq_below_threshold}\t{stats.depth_excluding_indels}\t"
        f"{cls.percent_mapq_below_threshold}\t{stats.n_deleted_in_record}\t"
        f"{stats.depth_including_indels}\n"
    )


def format_record(
    category: RegionCategory, locus: Locus, stats: PileupStats, cls: LocusClassification
) -> str:
    if category is RegionCategory.INCOMPLETE:
        return format_incomplete(locus)
    return format_dark(locus, stats, cls)
