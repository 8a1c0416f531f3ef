"""Shared fixtures: a small synthetic genome and insertion pool.

The genome holds 400 genes of 1000 bp separated by 500 bp spacers on one
replicon. Every fourth gene is essential and receives almost no insertions;
the others are saturated. A handful of single-read barcodes are added as
noise on essential genes.
"""

import numpy as np
import pandas as pd
import pytest

from tnessentials.interval_index import GeneFeature


GENE_COUNT = 400
GENE_LENGTH = 1000
SPACER = 500
REPLICON = "chr1"
REPLICON_LENGTH = GENE_COUNT * (GENE_LENGTH + SPACER)


def gene_start(i):
    return i * (GENE_LENGTH + SPACER) + SPACER // 2


def is_essential(i):
    return i % 4 == 0


def synthetic_genome(seed=7):
    """Return (feature table, insertion table) as pandas DataFrames."""
    rng = np.random.default_rng(seed)

    features = pd.DataFrame({
        "locus_tag": [f"SYN_{i:04d}" for i in range(GENE_COUNT)],
        "replicon": REPLICON,
        "start": [gene_start(i) for i in range(GENE_COUNT)],
        "end": [gene_start(i) + GENE_LENGTH for i in range(GENE_COUNT)],
        "strand": ["+" if i % 2 else "-" for i in range(GENE_COUNT)],
        "description": [f"synthetic protein {i}" for i in range(GENE_COUNT)],
    })

    positions, reads = [], []
    for i in range(GENE_COUNT):
        start = gene_start(i)
        hits = rng.poisson(0.5 if is_essential(i) else 20)
        positions.extend(rng.integers(start, start + GENE_LENGTH + 1, size=hits))
        spacer_start = start + GENE_LENGTH + 1
        spacer_hits = rng.poisson(10)
        positions.extend(rng.integers(spacer_start, spacer_start + SPACER - 1, size=spacer_hits))
    reads.extend(rng.integers(2, 60, size=len(positions)))

    # single-read noise on essential genes
    for i in range(0, GENE_COUNT, 40):
        positions.append(gene_start(i) + GENE_LENGTH // 2)
        reads.append(1)

    insertions = pd.DataFrame({
        "barcode": [f"BC{n:06d}" for n in range(len(positions))],
        "replicon": REPLICON,
        "position": np.asarray(positions, dtype=np.int64),
        "read_count": np.asarray(reads, dtype=np.int64),
        "secondary_position_count": 0,
    })
    return features, insertions


@pytest.fixture
def genome():
    return synthetic_genome()


@pytest.fixture
def genome_files(tmp_path, genome):
    """Write the synthetic tables to csv and return their paths."""
    features, insertions = genome
    feature_path = tmp_path / "synth_features.csv"
    insertion_path = tmp_path / "synth_insertions.csv"
    features.to_csv(feature_path, index=False)
    insertions.to_csv(insertion_path, index=False)
    return feature_path, insertion_path


@pytest.fixture
def small_features():
    """Three genes on two replicons, the first two overlapping."""
    return [
        GeneFeature("A1", "chr1", 100, 500, "+", "long gene"),
        GeneFeature("A2", "chr1", 400, 600, "-", "short overlapping gene"),
        GeneFeature("B1", "plasmid", 100, 200, "+", "plasmid gene"),
    ]


def insertion_frame(rows):
    """Insertion table from (barcode, replicon, position, reads[, secondary]) tuples."""
    records = []
    for row in rows:
        barcode, replicon, position, reads = row[:4]
        secondary = row[4] if len(row) > 4 else 0
        records.append({"barcode": barcode, "replicon": replicon, "position": position,
                        "read_count": reads, "secondary_position_count": secondary})
    return pd.DataFrame(records, columns=["barcode", "replicon", "position",
                                          "read_count", "secondary_position_count"])
