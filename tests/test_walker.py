import io
import logging

import pytest

from darkregionfinder.config import FinderConfig
from darkregionfinder.models import CATEGORIES, IntervalChunk, RegionCategory
from darkregionfinder.walker import GenomeWalker, WalkerState

from fakes import FakeGenome, data_rows, random_genome, row_positions, run_sharded, site


def make_walker(genome, config):
    sinks = {part: {cat: io.StringIO() for cat in CATEGORIES} for part in ("body", "head", "tail")}
    walker = GenomeWalker(
        config=config,
        reference=genome,
        bodies=sinks["body"],
        heads=sinks["head"],
        tails=sinks["tail"],
    )
    return walker, sinks


def whole(genome):
    return [IntervalChunk(name, 1, length) for name, length in genome.contigs()]


@pytest.mark.parametrize("exclusive, n_mapq_rows", [(False, 3), (True, 0)])
def test_shallow_low_mapq_run(tmp_path, exclusive, n_mapq_rows):
    genome = FakeGenome(
        {
            "chr1": [site(depth=20)]
            + [site(depth=2, n_low=2)] * 3
            + [site(depth=20)] * 2
        }
    )
    cfg = FinderConfig(
        min_depth=5,
        mapq_threshold=9,
        min_mapq_mass=90,
        min_region_size=3,
        exclusive_regions=exclusive,
    )
    out = run_sharded(tmp_path, genome, cfg, 1)

    assert row_positions(out[RegionCategory.LOW_DEPTH]) == [("chr1", 2), ("chr1", 3), ("chr1", 4)]
    assert len(data_rows(out[RegionCategory.LOW_MAPQ])) == n_mapq_rows
    assert data_rows(out[RegionCategory.INCOMPLETE]) == []


def test_dark_row_columns(tmp_path):
    genome = FakeGenome({"chr1": [site(depth=20), site(depth=3, n_low=1, n_del=1), site(depth=20)]})
    out = run_sharded(tmp_path, genome, FinderConfig(), 1)
    assert data_rows(out[RegionCategory.LOW_DEPTH]) == ["chr1\t1\t2\t1\t2\t33\t1\t3"]
    assert out[RegionCategory.LOW_DEPTH].startswith("#chrom\tstart\tend\tnMapQBelowThreshold")


def test_unknown_bases_close_short_dark_runs(tmp_path):
    genome = FakeGenome(
        {
            "chr1": [site(depth=0)] * 2
            + [site(base="N", depth=0)] * 4
            + [site(depth=0)] * 2
        }
    )
    out = run_sharded(tmp_path, genome, FinderConfig(min_region_size=3), 1)

    assert data_rows(out[RegionCategory.LOW_DEPTH]) == []
    assert row_positions(out[RegionCategory.INCOMPLETE]) == [("chr1", p) for p in range(3, 7)]
    assert data_rows(out[RegionCategory.INCOMPLETE])[0] == "chr1\t2\t3"


def test_contig_change_breaks_run(tmp_path):
    genome = FakeGenome({"chr1": [site(depth=0)] * 2, "chr2": [site(depth=0)] * 2})
    out = run_sharded(tmp_path, genome, FinderConfig(min_region_size=3), 1)
    assert data_rows(out[RegionCategory.LOW_DEPTH]) == []

    out = run_sharded(tmp_path, genome, FinderConfig(min_region_size=2), 1)
    assert len(data_rows(out[RegionCategory.LOW_DEPTH])) == 4


def test_position_gap_breaks_run():
    genome = FakeGenome({"chr1": [site(depth=0)] * 10})
    walker, sinks = make_walker(genome, FinderConfig(min_region_size=3))
    walker.scan(genome, [IntervalChunk("chr1", 1, 2), IntervalChunk("chr1", 5, 6)])
    # both runs touch an edge of the scan
    assert sinks["body"][RegionCategory.LOW_DEPTH].getvalue() == ""
    assert sinks["head"][RegionCategory.LOW_DEPTH].getvalue().count("\n") == 2
    assert sinks["tail"][RegionCategory.LOW_DEPTH].getvalue().count("\n") == 2


def test_edge_runs_go_to_head_and_tail():
    genome = FakeGenome(
        {"chr1": [site(depth=0)] * 2 + [site()] + [site(depth=0)] * 4 + [site()] + [site(depth=0)]}
    )
    walker, sinks = make_walker(genome, FinderConfig(min_region_size=5))
    summary = walker.scan(genome, whole(genome))

    cat = RegionCategory.LOW_DEPTH
    assert summary.heads[cat] == (2, ("chr1", 1), ("chr1", 2))
    assert summary.tails[cat] == (1, ("chr1", 9), ("chr1", 9))
    assert not summary.head_open_at_end[cat]
    assert sinks["body"][cat].getvalue() == ""  # interior run of 4 is below 5
    assert summary.heads[RegionCategory.INCOMPLETE] is None
    assert summary.loci_assessed == 9
    assert walker.state is WalkerState.CLOSED


def test_run_spanning_whole_scan_stays_in_head():
    genome = FakeGenome({"chr1": [site(depth=0)] * 6})
    walker, sinks = make_walker(genome, FinderConfig(max_buffered_loci=2))
    summary = walker.scan(genome, whole(genome))

    cat = RegionCategory.LOW_DEPTH
    assert summary.head_open_at_end[cat]
    assert summary.heads[cat][0] == 6
    assert summary.tails[cat] is None
    assert sinks["head"][cat].getvalue().count("\n") == 6
    assert sinks["body"][cat].getvalue() == ""


def test_missing_reference_contig_warns_once(tmp_path, caplog):
    genome = FakeGenome(
        {"chr1": [site(depth=0)] * 3, "chrUn": [site(depth=0)] * 50},
        alignment_only=["chrUn"],
    )
    walker, sinks = make_walker(genome, FinderConfig())
    with caplog.at_level(logging.WARNING, logger="darkregionfinder.walker"):
        walker.walk(genome.iter_loci(IntervalChunk("chrUn", 1, 50)))
        summary = walker.scan(genome, whole(genome))

    warnings = [r for r in caplog.records if "chrUn" in r.getMessage()]
    assert len(warnings) == 1
    assert summary.ignored_contigs == ["chrUn"]
    assert summary.loci_assessed == 3


def test_walk_after_close_raises():
    genome = FakeGenome({"chr1": [site()] * 3})
    walker, _ = make_walker(genome, FinderConfig())
    walker.scan(genome, whole(genome))
    with pytest.raises(RuntimeError):
        walker.walk(genome.iter_loci(IntervalChunk("chr1", 1, 1)))
    with pytest.raises(RuntimeError):
        walker.close()


@pytest.mark.parametrize("seed", [1, 2, 3, 4])
def test_exclusivity_only_removes_low_depth_loci(tmp_path, seed):
    genome = random_genome(seed)
    shared = run_sharded(tmp_path, genome, FinderConfig(min_region_size=1), 1)
    exclusive = run_sharded(
        tmp_path, genome, FinderConfig(min_region_size=1, exclusive_regions=True), 1
    )

    mapq_shared = set(row_positions(shared[RegionCategory.LOW_MAPQ]))
    mapq_exclusive = set(row_positions(exclusive[RegionCategory.LOW_MAPQ]))
    low_depth = set(row_positions(shared[RegionCategory.LOW_DEPTH]))

    assert mapq_exclusive <= mapq_shared
    assert mapq_shared - mapq_exclusive <= low_depth
    assert not (mapq_exclusive & low_depth)
    assert exclusive[RegionCategory.LOW_DEPTH] == shared[RegionCategory.LOW_DEPTH]


def runs(positions):
    out = []
    for contig, pos in positions:
        if out and out[-1][0] == contig and out[-1][2] + 1 == pos:
            out[-1][2] = pos
        else:
            out.append([contig, pos, pos])
    return out


@pytest.mark.parametrize("seed", [5, 6, 7])
@pytest.mark.parametrize("min_size", [2, 6])
def test_no_region_shorter_than_min_size(tmp_path, seed, min_size):
    genome = random_genome(seed)
    out = run_sharded(tmp_path, genome, FinderConfig(min_region_size=min_size), 1)
    for cat in CATEGORIES:
        for contig, start, end in runs(row_positions(out[cat])):
            assert end - start + 1 >= min_size, (cat, contig, start, end)


def test_incomplete_and_dark_never_overlap(tmp_path):
    genome = random_genome(11)
    out = run_sharded(tmp_path, genome, FinderConfig(), 1)
    incomplete = set(row_positions(out[RegionCategory.INCOMPLETE]))
    dark = set(row_positions(out[RegionCategory.LOW_DEPTH])) | set(
        row_positions(out[RegionCategory.LOW_MAPQ])
    )
    assert incomplete
    assert not (incomplete & dark)


def test_close_logs_rows_written_per_category(caplog):
    genome = FakeGenome({"chr1": [site()] + [site(depth=0)] * 4 + [site()]})
    walker, _ = make_walker(genome, FinderConfig())
    with caplog.at_level(logging.DEBUG, logger="darkregionfinder.walker"):
        summary = walker.scan(genome, whole(genome))

    assert not hasattr(summary, "rows_written")
    messages = [r.getMessage() for r in caplog.records]
    assert "walker: 4 low_depth rows written" in messages
    assert "walker: 0 incomplete rows written" in messages
