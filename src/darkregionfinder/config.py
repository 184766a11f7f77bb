from __future__ import annotations

import tempfile
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

STRINGENCIES = ("STRICT", "LENIENT", "SILENT")


@dataclass(frozen=True)
class FinderConfig:
    """Thresholds for one run; built once at startup and shared read-only.

    Attributes
    ----------
    mapq_threshold:
        Reads with MAPQ <= this value count toward the low-MAPQ mass.
    min_mapq_mass:
        Percentage (>=) of low-MAPQ reads for a locus to be dark by MAPQ.
    min_depth:
        Depth (<=, excluding deletions) at which a locus is dark by coverage.
    min_region_size:
        Shortest run, in loci, written to any output.
    exclusive_regions:
        Low-depth loci are never also reported as low-MAPQ.
    max_buffered_loci:
        Rows a run may hold in memory before a long run is spilled to disk.
    thread_count:
        Number of shards (and worker processes).
    temp_dir:
        Parent directory for per-shard files; system default when None.
    validation_stringency:
        STRICT, LENIENT or SILENT handling of malformed alignment input.
    write_header:
        Start each output with a ``#`` column header line.
    """

    mapq_threshold: int = 9
    min_mapq_mass: int = 90
    min_depth: int = 5
    min_region_size: int = 1
    exclusive_regions: bool = False
    max_buffered_loci: int = 10_000
    thread_count: int = 1
    temp_dir: Optional[str] = None
    validation_stringency: str = "STRICT"
    write_header: bool = True

    def __post_init__(self) -> None:
        if self.min_region_size < 1:
            raise ValueError(f"min_region_size must be >= 1 (got {self.min_region_size})")
        if self.thread_count < 1:
            raise ValueError(f"thread_count must be >= 1 (got {self.thread_count})")
        if not 0 <= self.min_mapq_mass <= 100:
            raise ValueError(f"min_mapq_mass must be within 0-100 (got {self.min_mapq_mass})")
        if self.mapq_threshold < 0:
            raise ValueError(f"mapq_threshold must be >= 0 (got {self.mapq_threshold})")
        if self.min_depth < 0:
            raise ValueError(f"min_depth must be >= 0 (got {self.min_depth})")
        if self.max_buffered_loci < 1:
            raise ValueError(f"max_buffered_loci must be >= 1 (got {self.max_buffered_loci})")
        if self.validation_stringency.upper() not in STRINGENCIES:
            raise ValueError(
                f"validation_stringency must be one of {', '.join(STRINGENCIES)} "
                f"(got {self.validation_stringency})"
            )

    @property
    def resolved_temp_dir(self) -> str:
        return self.temp_dir if self.temp_dir else tempfile.gettempdir()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
