import pytest

from darkregionfinder.models import IntervalChunk
from darkregionfinder.partition import (
    build_interval_plan,
    parse_interval,
    partition_chunks,
    partition_genome,
    whole_genome_chunks,
)


def flatten(shards):
    out = []
    for shard in shards:
        for chunk in shard:
            out.extend((chunk.contig, p) for p in range(chunk.start, chunk.end + 1))
    return out


def test_four_shards_cover_genome_exactly_once():
    contigs = [(f"chr{i}", 100_000) for i in range(1, 11)]
    shards = partition_genome(contigs, 4)

    assert len(shards) == 4
    assert all(shards)
    assert [sum(len(c) for c in s) for s in shards] == [250_000] * 4
    assert sum(len(c) for s in shards for c in s) == 1_000_000
    # chunks are contiguous and ordered across shard boundaries
    chunks = [c for s in shards for c in s]
    for prev, nxt in zip(chunks, chunks[1:]):
        if prev.contig == nxt.contig:
            assert nxt.start == prev.end + 1
        else:
            assert prev.end == dict(contigs)[prev.contig]
            assert nxt.start == 1


def test_uneven_split_puts_remainder_last():
    shards = partition_genome([("chr1", 7), ("chr2", 3)], 3)
    assert [sum(len(c) for c in s) for s in shards] == [4, 4, 2]
    assert shards[1] == [IntervalChunk("chr1", 5, 7), IntervalChunk("chr2", 1, 1)]
    assert flatten(shards) == [("chr1", p) for p in range(1, 8)] + [("chr2", p) for p in range(1, 4)]


def test_fewer_bases_than_shards():
    shards = partition_genome([("chrM", 3)], 8)
    assert shards == [[IntervalChunk("chrM", p, p)] for p in (1, 2, 3)]


def test_single_shard_keeps_whole_contigs():
    contigs = [("chr1", 50), ("chr2", 20)]
    assert partition_genome(contigs, 1) == [whole_genome_chunks(contigs)]


def test_empty_contigs_and_bad_thread_count():
    assert whole_genome_chunks([("chr1", 0), ("chr2", 5)]) == [IntervalChunk("chr2", 1, 5)]
    assert partition_chunks([], 4) == []
    with pytest.raises(ValueError):
        partition_chunks([IntervalChunk("chr1", 1, 5)], 0)


LENGTHS = {"chr1": 5_000, "chr2": 1_000, "HLA-A*01:01:01:02N": 3_291}


@pytest.mark.parametrize(
    "text, expected",
    [
        ("chr1", IntervalChunk("chr1", 1, 5_000)),
        ("chr1:1,000-2,000", IntervalChunk("chr1", 1_000, 2_000)),
        ("chr1:4500", IntervalChunk("chr1", 4_500, 5_000)),
        ("chr2:7-7", IntervalChunk("chr2", 7, 7)),
        ("HLA-A*01:01:01:02N", IntervalChunk("HLA-A*01:01:01:02N", 1, 3_291)),
        ("HLA-A*01:01:01:02N:1-3291", IntervalChunk("HLA-A*01:01:01:02N", 1, 3_291)),
    ],
)
def test_parse_interval(text, expected):
    assert parse_interval(text, LENGTHS) == expected


@pytest.mark.parametrize(
    "text, message",
    [
        ("chrZ", "Unknown contig"),
        ("chrZ:1-10", "Unknown contig"),
        ("chr1:a-b", "Malformed interval"),
        ("chr1:10-5", "Invalid interval"),
        ("chr1:0-5", "Invalid interval"),
        ("chr2:900-1001", "extends past the end"),
    ],
)
def test_parse_interval_errors(text, message):
    with pytest.raises(ValueError, match=message):
        parse_interval(text, LENGTHS)


def test_interval_plan_sorts_and_merges():
    contigs = [("chr1", 1_000), ("chr2", 1_000)]
    plan = build_interval_plan(
        ["chr2:1-10", "chr1:55-70", "chr1:50-60", "chr1:71-80", "chr1:100-110"], contigs
    )
    assert plan == [
        IntervalChunk("chr1", 50, 80),
        IntervalChunk("chr1", 100, 110),
        IntervalChunk("chr2", 1, 10),
    ]
