from __future__ import annotations

import logging
from typing import List, Optional, TextIO, Tuple

from .models import RegionCategory

logger = logging.getLogger(__name__)

RunSpan = Tuple[int, Tuple[str, int], Tuple[str, int]]


class RegionAccumulator:
    """Run-length tracker for one output category.

    Holds the formatted rows of the run that is currently open. Rows reach
    ``sink`` only when the run closes with at least ``min_region_size`` loci,
    or early when an already-qualifying run outgrows ``max_buffered_loci``.
    """

    def __init__(
        self,
        category: RegionCategory,
        *,
        min_region_size: int,
        max_buffered_loci: int,
        sink: TextIO,
    ) -> None:
        self.category = category
        self.min_region_size = min_region_size
        self.max_buffered_loci = max_buffered_loci
        self.sink = sink
        self.buffer: List[str] = []
        self.consecutive_count = 0
        self.first: Optional[Tuple[str, int]] = None
        self.last: Optional[Tuple[str, int]] = None
        self.rows_written = 0

    @property
    def is_open(self) -> bool:
        return self.consecutive_count > 0

    def extend(self, record: str, contig: str, position: int) -> None:
        if self.consecutive_count == 0:
            self.first = (contig, position)
        self.buffer.append(record)
        self.consecutive_count += 1
        self.last = (contig, position)

    def _write_buffer(self) -> None:
        self.sink.writelines(self.buffer)
        self.rows_written += len(self.buffer)
        self.buffer.clear()

    def flush_if_oversized(self) -> bool:
        """Spill a long qualifying run without closing it."""
        if self.consecutive_count > self.min_region_size and len(self.buffer) > self.max_buffered_loci:
            logger.debug(
                "Spilling %d %s rows (run length %d)",
                len(self.buffer),
                self.category.value,
                self.consecutive_count,
            )
            self._write_buffer()
            return True
        return False

    def flush_if_qualifying(self) -> bool:
        """Close the run: write it if long enough, then forget it either way."""
        written = False
        if self.consecutive_count >= self.min_region_size:
            self._write_buffer()
            written = True
        self.reset()
        return written

    def drain(self) -> Optional[RunSpan]:
        """Close the run and write it regardless of length.

        Returns ``(length, first, last)`` for the closed run, or None when no
        run was open.
        """
        if self.consecutive_count == 0:
            self.reset()
            return None
        assert self.first is not None and self.last is not None
        span = (self.consecutive_count, self.first, self.last)
        self._write_buffer()
        self.reset()
        return span

    def reset(self) -> None:
        self.buffer.clear()
        self.consecutive_count = 0
        self.first = None
        self.last = None
