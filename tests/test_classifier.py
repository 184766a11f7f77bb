import pytest

from darkregionfinder.classifier import classify_locus, percent_mapq_below
from darkregionfinder.config import FinderConfig
from darkregionfinder.models import Locus, PileupStats


def make_stats(mapqs, n_del=0) -> PileupStats:
    return PileupStats(
        depth_excluding_indels=len(mapqs) - n_del,
        depth_including_indels=len(mapqs),
        n_deleted_in_record=n_del,
        mapping_qualities=tuple(mapqs),
    )


def test_unknown_base_is_only_incomplete():
    cfg = FinderConfig()
    for base in ("N", "n"):
        cls = classify_locus(Locus("chr1", 10, base), make_stats([]), cfg)
        assert cls.incomplete
        assert not cls.low_depth
        assert not cls.low_mapq


def test_percent_rounds_half_up():
    assert percent_mapq_below(1, 8) == 13
    assert percent_mapq_below(1, 3) == 33
    assert percent_mapq_below(2, 3) == 67
    assert percent_mapq_below(0, 0) == -1


def test_zero_depth_is_low_depth_but_never_low_mapq():
    cfg = FinderConfig(min_mapq_mass=0)
    cls = classify_locus(Locus("chr1", 1, "A"), make_stats([]), cfg)
    assert cls.low_depth
    assert not cls.low_mapq
    assert cls.percent_mapq_below_threshold == -1


def test_mapq_threshold_is_inclusive():
    cfg = FinderConfig(mapq_threshold=9, min_mapq_mass=50, min_depth=0)
    cls = classify_locus(Locus("chr1", 1, "C"), make_stats([9, 9, 10, 60]), cfg)
    assert cls.n_mapq_below_threshold == 2
    assert cls.percent_mapq_below_threshold == 50
    assert cls.low_mapq
    assert not cls.low_depth


def test_deleted_reads_count_toward_mapq_mass_not_depth():
    cfg = FinderConfig(min_depth=1, min_mapq_mass=75)
    cls = classify_locus(Locus("chr1", 1, "G"), make_stats([0, 0, 0, 60], n_del=3), cfg)
    assert cls.low_depth  # one base-carrying read
    assert cls.percent_mapq_below_threshold == 75
    assert cls.low_mapq


@pytest.mark.parametrize("exclusive, expect_mapq", [(False, True), (True, False)])
def test_exclusivity_gives_low_depth_precedence(exclusive, expect_mapq):
    cfg = FinderConfig(min_depth=5, mapq_threshold=9, min_mapq_mass=90, exclusive_regions=exclusive)
    cls = classify_locus(Locus("chr1", 1, "T"), make_stats([0, 0]), cfg)
    assert cls.low_depth
    assert cls.low_mapq is expect_mapq


def test_exclusivity_does_not_touch_well_covered_loci():
    cfg = FinderConfig(min_depth=5, min_mapq_mass=90, exclusive_regions=True)
    cls = classify_locus(Locus("chr1", 1, "T"), make_stats([0] * 19 + [60]), cfg)
    assert not cls.low_depth
    assert cls.low_mapq


@pytest.mark.parametrize(
    "kwargs",
    [
        {"min_region_size": 0},
        {"thread_count": 0},
        {"min_mapq_mass": 101},
        {"min_mapq_mass": -1},
        {"mapq_threshold": -1},
        {"max_buffered_loci": 0},
        {"validation_stringency": "PARANOID"},
    ],
)
def test_invalid_config_is_rejected(kwargs):
    with pytest.raises(ValueError):
        FinderConfig(**kwargs)
