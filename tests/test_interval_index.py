"""Unit tests for the gene interval index.

Tests:
- Closed interval boundaries and intergenic coordinates
- Tie-break between overlapping genes and the overlap warning
- Replicon isolation
- Agreement between locate and locate_many
"""

import numpy as np
import pytest

from tnessentials.interval_index import GeneFeature, IntervalIndex


def test_locate_closed_boundaries(small_features):
    """Both start and end coordinates belong to the gene."""
    index = IntervalIndex.build(small_features)

    assert index.locate("plasmid", 100).locus_tag == "B1"
    assert index.locate("plasmid", 200).locus_tag == "B1"
    assert index.locate("plasmid", 150).locus_tag == "B1"


def test_locate_intergenic_returns_none(small_features):
    index = IntervalIndex.build(small_features)

    assert index.locate("plasmid", 99) is None
    assert index.locate("plasmid", 201) is None
    assert index.locate("chr1", 50) is None
    assert index.locate("chr1", 601) is None


def test_unknown_replicon_is_intergenic(small_features):
    index = IntervalIndex.build(small_features)

    assert index.locate("chr2", 150) is None
    assert list(index.locate_many("chr2", [1, 150, 1000])) == [-1, -1, -1]


def test_overlap_assigned_to_smallest_gene(small_features):
    """Coordinates shared by A1 (400 bp) and A2 (200 bp) go to A2."""
    index = IntervalIndex.build(small_features)

    for position in (400, 450, 500):
        assert index.locate("chr1", position).locus_tag == "A2"
    assert index.locate("chr1", 399).locus_tag == "A1"
    assert index.locate("chr1", 501).locus_tag == "A2"


def test_overlap_tie_break_is_stable_across_queries(small_features):
    """Repeated queries, single or batched, always pick the same gene."""
    index = IntervalIndex.build(small_features)
    genes = index.genes("chr1")

    picks = {index.locate("chr1", 450).locus_tag for _ in range(20)}
    batched = {genes[i].locus_tag for i in index.locate_many("chr1", [450] * 20)}

    assert picks == {"A2"}
    assert batched == {"A2"}


def test_equal_length_overlap_prefers_earliest_start():
    features = [GeneFeature("late", "chr1", 150, 250),
                GeneFeature("early", "chr1", 100, 200)]
    index = IntervalIndex.build(features)

    assert index.locate("chr1", 175).locus_tag == "early"
    assert index.locate("chr1", 225).locus_tag == "late"


def test_equal_coordinates_prefer_first_locus_tag():
    features = [GeneFeature("geneB", "chr1", 100, 200),
                GeneFeature("geneA", "chr1", 100, 200)]
    index = IntervalIndex.build(features)

    assert index.locate("chr1", 150).locus_tag == "geneA"


def test_overlapping_pairs_recorded(small_features):
    index = IntervalIndex.build(small_features)

    assert index.overlapping_pairs == (("A1", "A2"),)
    assert index.replicons["chr1"].has_overlaps
    assert not index.replicons["plasmid"].has_overlaps


def test_shared_boundary_reported_as_overlap(capsys):
    """Genes sharing one coordinate overlap on that coordinate."""
    features = [GeneFeature("left", "chr1", 0, 100),
                GeneFeature("right", "chr1", 100, 150)]
    index = IntervalIndex.build(features)

    assert index.overlapping_pairs == (("left", "right"),)
    assert "WARNING" in capsys.readouterr().out
    assert index.locate("chr1", 100).locus_tag == "right"


def test_adjacent_genes_not_reported(capsys):
    features = [GeneFeature("left", "chr1", 0, 100),
                GeneFeature("right", "chr1", 101, 150)]
    index = IntervalIndex.build(features)

    assert index.overlapping_pairs == ()
    assert "WARNING" not in capsys.readouterr().out


def test_replicons_are_kept_apart():
    """Identical coordinates on two replicons resolve to each replicon's own gene."""
    features = [GeneFeature("chr_gene", "chr1", 100, 200),
                GeneFeature("plasmid_gene", "plasmid", 100, 200)]
    index = IntervalIndex.build(features)

    assert index.locate("chr1", 150).locus_tag == "chr_gene"
    assert index.locate("plasmid", 150).locus_tag == "plasmid_gene"


def test_genes_sorted_and_counted(small_features):
    index = IntervalIndex.build(small_features)

    assert len(index) == 3
    assert [g.locus_tag for g in index.genes("chr1")] == ["A1", "A2"]
    assert index.genes("missing") == []
    assert {g.locus_tag for g in index.genes()} == {"A1", "A2", "B1"}


def test_gene_feature_length_and_contains():
    gene = GeneFeature("g", "chr1", 10, 20)

    assert gene.length == 10
    assert gene.contains(10)
    assert gene.contains(20)
    assert not gene.contains(21)


@pytest.mark.parametrize("overlapping", [False, True])
def test_locate_many_matches_locate(overlapping):
    """The vectorised lookup agrees with the single lookup on random positions."""
    rng = np.random.default_rng(3)
    features = [GeneFeature(f"g{i}", "chr1", i * 300, i * 300 + 200) for i in range(50)]
    if overlapping:
        features += [GeneFeature(f"o{i}", "chr1", i * 1500 + 150, i * 1500 + 400) for i in range(10)]
    index = IntervalIndex.build(features)
    genes = index.genes("chr1")

    positions = rng.integers(0, 16000, size=2000)
    hits = index.locate_many("chr1", positions)

    for position, hit in zip(positions, hits):
        expected = index.locate("chr1", position)
        if expected is None:
            assert hit == -1
        else:
            assert genes[hit] == expected


def test_index_is_immutable(small_features):
    index = IntervalIndex.build(small_features)

    with pytest.raises(AttributeError):
        index.overlapping_pairs = ()
