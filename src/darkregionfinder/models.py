from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple


class RegionCategory(str, Enum):
    """Output streams. A locus may feed both dark categories unless regions are exclusive."""

    INCOMPLETE = "incomplete"
    LOW_DEPTH = "low_depth"
    LOW_MAPQ = "low_mapq"


CATEGORIES: Tuple[RegionCategory, ...] = (
    RegionCategory.INCOMPLETE,
    RegionCategory.LOW_DEPTH,
    RegionCategory.LOW_MAPQ,
)


@dataclass(frozen=True)
class Locus:
    """One scanned reference position.

    Attributes
    ----------
    contig:
        Contig name as present in the alignment header.
    position:
        1-based genomic position.
    reference_base:
        Reference base at ``position`` (as stored in the FASTA, any case).
    """

    contig: str
    position: int
    reference_base: str


@dataclass(frozen=True)
class PileupStats:
    """Per-locus pileup snapshot.

    ``mapping_qualities`` holds one MAPQ per read covering the locus, including
    reads with a deletion there.
    """

    depth_excluding_indels: int
    depth_including_indels: int
    n_deleted_in_record: int
    mapping_qualities: Sequence[int] = ()


@dataclass(frozen=True)
class LocusClassification:
    incomplete: bool
    low_depth: bool
    low_mapq: bool
    n_mapq_below_threshold: int
    percent_mapq_below_threshold: int  # -1 when nothing covers the locus

    def qualifies(self, category: RegionCategory) -> bool:
        if category is RegionCategory.INCOMPLETE:
            return self.incomplete
        if category is RegionCategory.LOW_DEPTH:
            return self.low_depth
        return self.low_mapq


@dataclass(frozen=True)
class IntervalChunk:
    """A contiguous span of one contig, 1-based inclusive on both ends."""

    contig: str
    start: int
    end: int

    def __len__(self) -> int:
        return self.end - self.start + 1

    def __str__(self) -> str:
        return f"{self.contig}:{self.start}-{self.end}"


@dataclass(frozen=True)
class EdgeRun:
    """A run left open at a shard edge, written unfiltered to its own file.

    ``length`` counts every locus of the run seen by the shard, including loci
    already spilled to the body file.
    """

    path: Path
    length: int
    first: Tuple[str, int]
    last: Tuple[str, int]
    open_at_end: bool = False

    def continues(self, previous_last: Optional[Tuple[str, int]]) -> bool:
        if previous_last is None:
            return False
        contig, pos = previous_last
        return self.first[0] == contig and self.first[1] == pos + 1


@dataclass
class ShardResult:
    """What one walker hands back to the coordinator."""

    index: int
    loci_assessed: int
    ignored_contigs: Sequence[str]
    bodies: Dict[RegionCategory, Path]
    heads: Dict[RegionCategory, Optional[EdgeRun]]
    tails: Dict[RegionCategory, Optional[EdgeRun]]
