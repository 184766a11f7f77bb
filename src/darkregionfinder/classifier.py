from __future__ import annotations

import math

from .config import FinderConfig
from .models import Locus, LocusClassification, PileupStats

UNKNOWN_BASES = frozenset({"N", "n"})


def is_unknown_base(base: str) -> bool:
    return base in UNKNOWN_BASES


def count_mapq_below(mapping_qualities, mapq_threshold: int) -> int:
    """Number of reads with MAPQ <= ``mapq_threshold``."""
    return sum(1 for q in mapping_qualities if q <= mapq_threshold)


def percent_mapq_below(n_below: int, total_depth: int) -> int:
    """Percentage of low-MAPQ reads, rounded half up (12.5 -> 13); -1 when nothing covers the locus."""
    if total_depth <= 0:
        return -1
    return int(math.floor(n_below / total_depth * 100 + 0.5))


def classify_locus(locus: Locus, stats: PileupStats, config: FinderConfig) -> LocusClassification:
    """Decide which output categories a single locus belongs to.

    Incomplete loci (reference base ``N``) are never dark. A locus with
    ``depth <= min_depth`` is dark by coverage; a locus whose low-MAPQ mass
    reaches ``min_mapq_mass`` is dark by MAPQ, unless ``exclusive_regions`` is
    set and it is already dark by coverage.
    """
    if is_unknown_base(locus.reference_base):
        return LocusClassification(
            incomplete=True,
            low_depth=False,
            low_mapq=False,
            n_mapq_below_threshold=0,
            percent_mapq_below_threshold=-1,
        )

    n_below = count_mapq_below(stats.mapping_qualities, config.mapq_threshold)
    percent = percent_mapq_below(n_below, stats.depth_including_indels)

    low_depth = stats.depth_excluding_indels <= config.min_depth
    if config.exclusive_regions and low_depth:
        low_mapq = False
    else:
        # percent is -1 at zero depth, which never meets a non-negative mass
        low_mapq = percent >= config.min_mapq_mass

    return LocusClassification(
        incomplete=False,
        low_depth=low_depth,
        low_mapq=low_mapq,
        n_mapq_below_threshold=n_below,
        percent_mapq_below_threshold=percent,
    )
