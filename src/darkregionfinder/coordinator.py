"""Sharded scan of a genome and ordered merge of the per-shard outputs.

Each shard is an independent :class:`~darkregionfinder.walker.GenomeWalker`
run with its own pysam handles and its own temporary files:

- ``body``: runs that opened and closed inside the shard, already filtered
  by ``min_region_size``;
- ``head``: the run open at the shard's first locus, unfiltered;
- ``tail``: the run open at the shard's last locus, unfiltered.

The merge walks shards in genomic order and joins a shard's head onto the
previous shard's tail when the two are adjacent, so a region cut by a shard
boundary is sized as a whole. Output is therefore identical for any number of
shards.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import time
from concurrent.futures import ProcessPoolExecutor, as_completed
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional, Sequence, Tuple

from tqdm import tqdm

from .config import FinderConfig
from .errors import ShardFailedError
from .formatting import header_line
from .models import CATEGORIES, EdgeRun, IntervalChunk, RegionCategory, ShardResult
from .partition import build_interval_plan, partition_chunks, whole_genome_chunks
from .pileup import PileupSource, ReferenceSource
from .utils import append_files, open_binmaybe_gzip
from .validation import check_alignment_index, check_contig_overlap, check_exists, check_reference_index
from .walker import GenomeWalker, LocusStream, SequenceLookup

logger = logging.getLogger(__name__)

_PARTS = ("head", "body", "tail")


@dataclass(frozen=True)
class OutputPaths:
    low_depth: Path
    low_mapq: Path
    incomplete: Path

    def for_category(self, category: RegionCategory) -> Path:
        if category is RegionCategory.LOW_DEPTH:
            return self.low_depth
        if category is RegionCategory.LOW_MAPQ:
            return self.low_mapq
        return self.incomplete


@dataclass(frozen=True)
class RunPlan:
    contigs: List[Tuple[str, int]]
    chunks: List[IntervalChunk]
    shards: List[List[IntervalChunk]]

    @property
    def total_bases(self) -> int:
        return sum(len(c) for c in self.chunks)


@dataclass(frozen=True)
class ShardTask:
    index: int
    chunks: Tuple[IntervalChunk, ...]
    alignment_path: str
    reference_path: str
    config: FinderConfig
    workdir: str


def _shard_file(workdir: str, index: int, category: RegionCategory, part: str) -> Path:
    return Path(workdir) / f"shard{index:04d}.{category.value}.{part}.bed"


def _edge(path: Path, span, open_at_end: bool = False) -> Optional[EdgeRun]:
    if span is None:
        return None
    length, first, last = span
    return EdgeRun(path=path, length=length, first=first, last=last, open_at_end=open_at_end)


def scan_shard(
    *,
    index: int,
    chunks: Sequence[IntervalChunk],
    source: LocusStream,
    reference: SequenceLookup,
    config: FinderConfig,
    workdir: str,
) -> ShardResult:
    """Walk one shard from ``source`` into its head/body/tail files."""
    paths = {
        part: {cat: _shard_file(workdir, index, cat, part) for cat in CATEGORIES}
        for part in _PARTS
    }

    with ExitStack() as stack:
        handles = {
            part: {
                cat: stack.enter_context(open(path, "wt", encoding="utf-8"))
                for cat, path in paths[part].items()
            }
            for part in _PARTS
        }

        walker = GenomeWalker(
            config=config,
            reference=reference,
            bodies=handles["body"],
            heads=handles["head"],
            tails=handles["tail"],
            label=f"shard {index}",
        )
        summary = walker.scan(source, chunks)

    return ShardResult(
        index=index,
        loci_assessed=summary.loci_assessed,
        ignored_contigs=summary.ignored_contigs,
        bodies=paths["body"],
        heads={
            cat: _edge(paths["head"][cat], summary.heads[cat], summary.head_open_at_end[cat])
            for cat in CATEGORIES
        },
        tails={cat: _edge(paths["tail"][cat], summary.tails[cat]) for cat in CATEGORIES},
    )


def run_shard(task: ShardTask) -> ShardResult:
    """Open fresh pysam handles and scan one shard. Module-level so worker processes can unpickle it."""
    with ReferenceSource(task.reference_path) as reference, PileupSource(
        task.alignment_path, reference, stringency=task.config.validation_stringency
    ) as pileup:
        return scan_shard(
            index=task.index,
            chunks=task.chunks,
            source=pileup,
            reference=reference,
            config=task.config,
            workdir=task.workdir,
        )


class RunStitcher:
    """Writes one category's shard outputs in order, joining runs cut at shard edges."""

    def __init__(self, out: BinaryIO, min_region_size: int) -> None:
        self.out = out
        self.min_region_size = min_region_size
        self._pending: List[Path] = []
        self._length = 0
        self._last: Optional[Tuple[str, int]] = None

    def _finish(self) -> None:
        if self._pending and self._length >= self.min_region_size:
            append_files(self._pending, self.out)
        self._pending = []
        self._length = 0
        self._last = None

    def _start(self, run: Optional[EdgeRun]) -> None:
        if run is None:
            return
        self._pending = [run.path]
        self._length = run.length
        self._last = run.last

    def add_shard(self, head: Optional[EdgeRun], body: Path, tail: Optional[EdgeRun]) -> None:
        if head is not None and head.continues(self._last):
            self._pending.append(head.path)
            self._length += head.length
            self._last = head.last
        else:
            self._finish()
            self._start(head)

        if head is not None and head.open_at_end:
            return

        self._finish()
        append_files([body], self.out)
        self._start(tail)

    def close(self) -> None:
        self._finish()


def plan_run(
    *,
    alignment_path: str,
    reference_path: str,
    config: FinderConfig,
    intervals: Optional[Sequence[str]] = None,
) -> RunPlan:
    """Validate inputs and compute the scan plan and shards. Raises on fatal input problems."""
    check_exists(alignment_path, "Alignment file")
    check_exists(reference_path, "Reference FASTA")
    check_reference_index(reference_path)
    check_alignment_index(alignment_path)

    with ReferenceSource(reference_path) as reference, PileupSource(
        alignment_path, reference, stringency=config.validation_stringency
    ) as pileup:
        aln_contigs = pileup.contigs()
        ref_contigs = reference.contigs()

    check_contig_overlap(aln_contigs, ref_contigs)

    if intervals:
        chunks = build_interval_plan(intervals, aln_contigs)
    else:
        chunks = whole_genome_chunks(aln_contigs)

    shards = partition_chunks(chunks, config.thread_count)
    return RunPlan(contigs=aln_contigs, chunks=chunks, shards=shards)


def _run_shards(tasks: List[ShardTask], workers: int, progress: bool) -> List[ShardResult]:
    if len(tasks) <= 1 or workers <= 1:
        results = []
        for task in tasks:
            try:
                results.append(run_shard(task))
            except Exception as e:
                raise ShardFailedError(task.index, e) from e
        return results

    results_by_index: Dict[int, ShardResult] = {}
    pool = ProcessPoolExecutor(max_workers=min(workers, len(tasks)))
    try:
        futures = {pool.submit(run_shard, task): task.index for task in tasks}
        it = as_completed(futures)
        if progress:
            it = tqdm(it, total=len(futures), unit="shard", desc="Scanning shards")
        for fut in it:
            index = futures[fut]
            try:
                results_by_index[index] = fut.result()
            except Exception as e:
                pool.shutdown(wait=True, cancel_futures=True)
                raise ShardFailedError(index, e) from e
    finally:
        pool.shutdown(wait=True)

    return [results_by_index[i] for i in sorted(results_by_index)]


def merge_shard_outputs(
    results: Sequence[ShardResult], outputs: OutputPaths, config: FinderConfig
) -> None:
    """Concatenate shard outputs per category, in shard order, into the final files.

    Everything is written to ``<name>.tmp`` first; the final names only appear
    once all three outputs are complete.
    """
    staged: Dict[RegionCategory, Path] = {}
    try:
        for cat in CATEGORIES:
            final = outputs.for_category(cat)
            tmp = final.with_name(final.name + ".tmp")
            staged[cat] = tmp
            with open_binmaybe_gzip(tmp, "wb", compress=final.name.endswith(".gz")) as out:
                if config.write_header:
                    out.write(header_line(cat).encode("utf-8"))
                stitcher = RunStitcher(out, config.min_region_size)
                for result in results:
                    stitcher.add_shard(result.heads[cat], result.bodies[cat], result.tails[cat])
                stitcher.close()
    except BaseException:
        for tmp in staged.values():
            tmp.unlink(missing_ok=True)
        raise

    for cat, tmp in staged.items():
        os.replace(tmp, outputs.for_category(cat))


def run_dark_region_finder(
    *,
    alignment_path: str,
    reference_path: str,
    outputs: OutputPaths,
    config: FinderConfig,
    intervals: Optional[Sequence[str]] = None,
    progress: bool = True,
) -> Dict[str, Any]:
    """Main workhorse: plan, scan shards, merge outputs, and return a summary dict."""
    t0 = time.time()

    plan = plan_run(
        alignment_path=alignment_path,
        reference_path=reference_path,
        config=config,
        intervals=intervals,
    )
    logger.info(
        "Scanning %d bases in %d chunk(s) across %d shard(s)",
        plan.total_bases,
        len(plan.chunks),
        len(plan.shards),
    )

    for cat in CATEGORIES:
        outputs.for_category(cat).parent.mkdir(parents=True, exist_ok=True)

    temp_parent = Path(config.resolved_temp_dir)
    temp_parent.mkdir(parents=True, exist_ok=True)
    workdir = tempfile.mkdtemp(prefix="drf.", dir=str(temp_parent))
    logger.debug("Shard files in %s", workdir)

    try:
        tasks = [
            ShardTask(
                index=i,
                chunks=tuple(chunks),
                alignment_path=str(alignment_path),
                reference_path=str(reference_path),
                config=config,
                workdir=workdir,
            )
            for i, chunks in enumerate(plan.shards)
        ]
        results = _run_shards(tasks, config.thread_count, progress)
        merge_shard_outputs(results, outputs, config)
    finally:
        shutil.rmtree(workdir, ignore_errors=True)

    ignored = sorted({c for r in results for c in r.ignored_contigs})
    dt = time.time() - t0

    return {
        "alignment_path": str(alignment_path),
        "reference_path": str(reference_path),
        "intervals": list(intervals) if intervals else None,
        "config": config.to_dict(),
        "shards": len(plan.shards),
        "bases_planned": plan.total_bases,
        "loci_assessed": sum(r.loci_assessed for r in results),
        "ignored_contigs": ignored,
        "outputs": {cat.value: str(outputs.for_category(cat)) for cat in CATEGORIES},
        "runtime_seconds": float(dt),
    }
