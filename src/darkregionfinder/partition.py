from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

from .models import IntervalChunk

logger = logging.getLogger(__name__)

_RANGE_RE = re.compile(r"([\d,]+)(?:-([\d,]+))?")


def whole_genome_chunks(contigs: Iterable[Tuple[str, int]]) -> List[IntervalChunk]:
    """One chunk per non-empty contig, in declared order."""
    return [IntervalChunk(name, 1, int(length)) for name, length in contigs if int(length) > 0]


def partition_chunks(chunks: Sequence[IntervalChunk], thread_count: int) -> List[List[IntervalChunk]]:
    """Split an ordered chunk list into at most ``thread_count`` balanced shards.

    Each shard receives ``ceil(total / thread_count)`` bases (the last one what
    is left). Chunks are cut where a shard fills up, so one contig may span two
    shards but no output chunk belongs to more than one. Concatenating the
    shards in order gives back the input positions exactly once, in order.
    """
    if thread_count < 1:
        raise ValueError(f"thread_count must be >= 1 (got {thread_count})")

    total = sum(len(c) for c in chunks)
    if total == 0:
        return []

    per_shard = -(-total // thread_count)
    shards: List[List[IntervalChunk]] = []
    current: List[IntervalChunk] = []
    target = per_shard

    for chunk in chunks:
        start = chunk.start
        while chunk.end - start + 1 > target:
            current.append(IntervalChunk(chunk.contig, start, start + target - 1))
            shards.append(current)
            current = []
            start += target
            target = per_shard

        current.append(IntervalChunk(chunk.contig, start, chunk.end))
        target -= chunk.end - start + 1
        if target == 0:
            shards.append(current)
            current = []
            target = per_shard

    if current:
        shards.append(current)

    logger.debug(
        "Partitioned %d bases into %d shard(s) of <= %d bases", total, len(shards), per_shard
    )
    return shards


def partition_genome(contigs: Sequence[Tuple[str, int]], thread_count: int) -> List[List[IntervalChunk]]:
    """Partition whole contigs given as ``(name, length)`` pairs."""
    return partition_chunks(whole_genome_chunks(contigs), thread_count)


def _to_int(s: str) -> int:
    return int(s.replace(",", ""))


def parse_interval(text: str, lengths: Mapping[str, int]) -> IntervalChunk:
    """Parse ``contig``, ``contig:start`` or ``contig:start-end`` (1-based, inclusive).

    The range is split off at the last colon, since some contig names contain
    colons (e.g. ``HLA-A*01:01:01:02N:1-3291``).
    """
    text = text.strip()
    if text in lengths:
        return IntervalChunk(text, 1, int(lengths[text]))

    contig, sep, rng = text.rpartition(":")
    m = _RANGE_RE.fullmatch(rng) if sep else None
    if m is None:
        if not sep:
            raise ValueError(f"Unknown contig in interval: {text}")
        raise ValueError(f"Malformed interval (expected contig:start-end): {text}")
    if contig not in lengths:
        raise ValueError(f"Unknown contig in interval {text}: {contig}")

    length = int(lengths[contig])
    start = _to_int(m.group(1))
    end = _to_int(m.group(2)) if m.group(2) is not None else length
    if start < 1 or end < start:
        raise ValueError(f"Invalid interval coordinates: {text}")
    if end > length:
        raise ValueError(f"Interval {text} extends past the end of {contig} (length {length})")
    return IntervalChunk(contig, start, end)


def build_interval_plan(
    intervals: Sequence[str], contigs: Sequence[Tuple[str, int]]
) -> List[IntervalChunk]:
    """Parse, sort into contig order and merge overlapping or touching intervals."""
    lengths: Dict[str, int] = {name: int(length) for name, length in contigs}
    order = {name: i for i, (name, _) in enumerate(contigs)}

    parsed = sorted(
        (parse_interval(s, lengths) for s in intervals),
        key=lambda c: (order[c.contig], c.start),
    )

    merged: List[IntervalChunk] = []
    for chunk in parsed:
        if merged and merged[-1].contig == chunk.contig and chunk.start <= merged[-1].end + 1:
            prev = merged[-1]
            merged[-1] = IntervalChunk(prev.contig, prev.start, max(prev.end, chunk.end))
        else:
            merged.append(chunk)

    if len(merged) < len(parsed):
        logger.info("Merged %d intervals into %d", len(parsed), len(merged))
    return merged
