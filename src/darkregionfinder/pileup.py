"""pysam-backed reference and pileup sources.

Neither class is safe to share between workers; every shard opens its own.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

import pysam

from .models import IntervalChunk, Locus, PileupStats

logger = logging.getLogger(__name__)

# unmapped | secondary | duplicate | supplementary
_EXCLUDED_FLAGS = 0x4 | 0x100 | 0x400 | 0x800

_NO_COVERAGE = PileupStats(
    depth_excluding_indels=0,
    depth_including_indels=0,
    n_deleted_in_record=0,
    mapping_qualities=(),
)


class ReferenceSource:
    """Indexed FASTA lookup with a one-block cache for sequential access."""

    def __init__(self, fasta_path: str | Path, *, block_size: int = 65_536) -> None:
        self.path = str(fasta_path)
        self.block_size = int(block_size)
        self._fasta = pysam.FastaFile(self.path)
        self._names = set(self._fasta.references)
        self._block: Optional[Tuple[str, int, str]] = None

    def __enter__(self) -> "ReferenceSource":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._fasta.close()

    def contigs(self) -> List[Tuple[str, int]]:
        return list(zip(self._fasta.references, self._fasta.lengths))

    def has_sequence(self, contig: str) -> bool:
        return contig in self._names

    def base_at(self, contig: str, position: int) -> str:
        """Base at a 1-based position."""
        pos0 = position - 1
        block = self._block
        if block is None or block[0] != contig or not (block[1] <= pos0 < block[1] + len(block[2])):
            start0 = pos0 - pos0 % self.block_size
            seq = self._fasta.fetch(contig, start0, start0 + self.block_size)
            if pos0 - start0 >= len(seq):
                raise ValueError(f"Position {contig}:{position} is beyond the end of the reference")
            block = (contig, start0, seq)
            self._block = block
        return block[2][pos0 - block[1]]


def _alignment_mode(path: str) -> str:
    if path.endswith(".cram"):
        return "rc"
    if path.endswith(".sam"):
        return "r"
    return "rb"


class PileupSource:
    """Per-locus pileup statistics for every position of a chunk.

    Uncovered positions are reported with zero depth. Unmapped, secondary,
    supplementary and duplicate alignments are skipped, reference skips are
    ignored, and reads with a deletion at the locus count toward the total
    depth and the MAPQ mass.
    """

    def __init__(
        self,
        alignment_path: str | Path,
        reference: ReferenceSource,
        *,
        stringency: str = "STRICT",
        max_depth: int = 1_000_000,
    ) -> None:
        self.path = str(alignment_path)
        self.reference = reference
        self.max_depth = int(max_depth)
        stringency = stringency.upper()
        self._alignment = pysam.AlignmentFile(
            self.path,
            _alignment_mode(self.path),
            reference_filename=reference.path,
            ignore_truncation=stringency != "STRICT",
        )
        if stringency == "LENIENT":
            logger.warning("Validation stringency LENIENT: truncated alignment files are not rejected")
        self._contigs = set(self._alignment.references)

    def __enter__(self) -> "PileupSource":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._alignment.close()

    def contigs(self) -> List[Tuple[str, int]]:
        return list(zip(self._alignment.references, self._alignment.lengths))

    def _locus(self, contig: str, position: int) -> Locus:
        return Locus(contig, position, self.reference.base_at(contig, position))

    def _stats(self, column: pysam.PileupColumn) -> PileupStats:
        n_bases = 0
        n_deleted = 0
        mapqs: List[int] = []
        for pr in column.pileups:
            if pr.is_refskip:
                continue
            aln = pr.alignment
            if aln.flag & _EXCLUDED_FLAGS:
                continue
            if pr.is_del:
                n_deleted += 1
            else:
                n_bases += 1
            mapqs.append(int(aln.mapping_quality))
        return PileupStats(
            depth_excluding_indels=n_bases,
            depth_including_indels=n_bases + n_deleted,
            n_deleted_in_record=n_deleted,
            mapping_qualities=tuple(mapqs),
        )

    def iter_loci(self, chunk: IntervalChunk) -> Iterator[Tuple[Locus, PileupStats]]:
        contig = chunk.contig
        next_pos = chunk.start

        if contig in self._contigs:
            columns = self._alignment.pileup(
                contig,
                chunk.start - 1,
                chunk.end,
                truncate=True,
                stepper="nofilter",
                min_base_quality=0,
                ignore_overlaps=False,
                ignore_orphans=False,
                max_depth=self.max_depth,
            )
            for column in columns:
                pos = column.reference_pos + 1
                while next_pos < pos:
                    yield self._locus(contig, next_pos), _NO_COVERAGE
                    next_pos += 1
                yield self._locus(contig, pos), self._stats(column)
                next_pos = pos + 1

        while next_pos <= chunk.end:
            yield self._locus(contig, next_pos), _NO_COVERAGE
            next_pos += 1
