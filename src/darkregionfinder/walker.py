from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Protocol, Set, TextIO, Tuple

from .accumulator import RegionAccumulator, RunSpan
from .classifier import classify_locus
from .config import FinderConfig
from .formatting import format_record
from .models import CATEGORIES, IntervalChunk, Locus, PileupStats, RegionCategory

logger = logging.getLogger(__name__)

_PROGRESS_EVERY = 1_000_000

_DARK = (RegionCategory.LOW_DEPTH, RegionCategory.LOW_MAPQ)


class SequenceLookup(Protocol):
    def has_sequence(self, contig: str) -> bool: ...


class LocusStream(Protocol):
    def iter_loci(self, chunk: IntervalChunk) -> Iterator[Tuple[Locus, PileupStats]]: ...


class WalkerState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    CLOSED = "closed"


@dataclass
class WalkSummary:
    """Result of one scan.

    ``heads`` holds the run that was open at the first scanned locus, written
    unfiltered to the head sink; ``tails`` the run still open at the last
    locus, written unfiltered to the tail sink. ``head_open_at_end`` marks
    categories whose head run never closed, so it is also the tail.
    """

    loci_assessed: int
    ignored_contigs: List[str]
    heads: Dict[RegionCategory, Optional[RunSpan]] = field(default_factory=dict)
    tails: Dict[RegionCategory, Optional[RunSpan]] = field(default_factory=dict)
    head_open_at_end: Dict[RegionCategory, bool] = field(default_factory=dict)


class GenomeWalker:
    """Single pass over a stream of loci, feeding one accumulator per category.

    Runs break when a locus stops qualifying, when an incomplete locus
    interrupts dark runs (or vice versa), when the contig changes, and at gaps
    between scanned positions. Runs touching either end of the scan are not
    filtered by size here; they go to the head/tail sinks so that a caller
    scanning adjacent shards can join them.
    """

    def __init__(
        self,
        *,
        config: FinderConfig,
        reference: SequenceLookup,
        bodies: Mapping[RegionCategory, TextIO],
        heads: Mapping[RegionCategory, TextIO],
        tails: Mapping[RegionCategory, TextIO],
        label: str = "walker",
    ) -> None:
        self.config = config
        self.reference = reference
        self.label = label
        self._bodies = dict(bodies)
        self._heads = dict(heads)
        self._tails = dict(tails)

        self.accumulators: Dict[RegionCategory, RegionAccumulator] = {
            cat: RegionAccumulator(
                cat,
                min_region_size=config.min_region_size,
                max_buffered_loci=config.max_buffered_loci,
                sink=self._heads[cat],
            )
            for cat in CATEGORIES
        }
        self._leading: Dict[RegionCategory, bool] = {cat: True for cat in CATEGORIES}
        self._head_spans: Dict[RegionCategory, Optional[RunSpan]] = {cat: None for cat in CATEGORIES}

        self.state = WalkerState.IDLE
        self.ignored: Set[str] = set()
        self._known: Set[str] = set()
        self._last: Optional[Tuple[str, int]] = None
        self.loci_assessed = 0

    def _contig_usable(self, contig: str) -> bool:
        if contig in self._known:
            return True
        if contig in self.ignored:
            return False
        if self.reference.has_sequence(contig):
            self._known.add(contig)
            return True
        logger.warning(
            "Alignments reference contig %s but this sequence was not found in the provided "
            "reference. Skipping.",
            contig,
        )
        self.ignored.add(contig)
        return False

    def _close(self, category: RegionCategory) -> None:
        acc = self.accumulators[category]
        if self._leading[category]:
            self._head_spans[category] = acc.drain()
            self._leading[category] = False
            acc.sink = self._bodies[category]
        else:
            acc.flush_if_qualifying()

    def _close_all(self) -> None:
        for cat in CATEGORIES:
            self._close(cat)

    def _extend(self, category, locus, stats, cls) -> None:
        self.accumulators[category].extend(
            format_record(category, locus, stats, cls), locus.contig, locus.position
        )

    def walk(self, loci: Iterable[Tuple[Locus, PileupStats]]) -> None:
        if self.state is WalkerState.CLOSED:
            raise RuntimeError(f"{self.label}: cannot walk after close()")

        for locus, stats in loci:
            self.state = WalkerState.SCANNING

            for acc in self.accumulators.values():
                acc.flush_if_oversized()

            if not self._contig_usable(locus.contig):
                continue

            here = (locus.contig, locus.position)
            if self._last is not None and (
                self._last[0] != locus.contig or self._last[1] + 1 != locus.position
            ):
                self._close_all()
            self._last = here

            cls = classify_locus(locus, stats, self.config)

            if cls.incomplete:
                self._extend(RegionCategory.INCOMPLETE, locus, stats, cls)
                for cat in _DARK:
                    self._close(cat)
            else:
                self._close(RegionCategory.INCOMPLETE)
                for cat in _DARK:
                    if cls.qualifies(cat):
                        self._extend(cat, locus, stats, cls)
                    else:
                        self._close(cat)

            self.loci_assessed += 1
            if self.loci_assessed % _PROGRESS_EVERY == 0:
                logger.debug("%s: assessed %d loci (at %s:%d)", self.label, self.loci_assessed, *here)

    def _iter_chunk_loci(
        self, source: LocusStream, chunks: Iterable[IntervalChunk]
    ) -> Iterator[Tuple[Locus, PileupStats]]:
        for chunk in chunks:
            if not self._contig_usable(chunk.contig):
                continue
            logger.debug("%s: scanning %s", self.label, chunk)
            yield from source.iter_loci(chunk)

    def scan(self, source: LocusStream, chunks: Iterable[IntervalChunk]) -> WalkSummary:
        """Walk every position of ``chunks`` in order and close the walker."""
        self.walk(self._iter_chunk_loci(source, chunks))
        return self.close()

    def close(self) -> WalkSummary:
        if self.state is WalkerState.CLOSED:
            raise RuntimeError(f"{self.label}: already closed")

        summary = WalkSummary(
            loci_assessed=self.loci_assessed,
            ignored_contigs=sorted(self.ignored),
        )
        for cat, acc in self.accumulators.items():
            if self._leading[cat]:
                summary.heads[cat] = acc.drain()
                summary.tails[cat] = None
                summary.head_open_at_end[cat] = summary.heads[cat] is not None
                self._leading[cat] = False
            else:
                summary.heads[cat] = self._head_spans[cat]
                summary.head_open_at_end[cat] = False
                acc.sink = self._tails[cat]
                summary.tails[cat] = acc.drain()

        self.state = WalkerState.CLOSED
        logger.info("%s: done, %d loci assessed", self.label, self.loci_assessed)
        for cat, acc in self.accumulators.items():
            logger.debug("%s: %d %s rows written", self.label, acc.rows_written, cat.value)
        return summary
