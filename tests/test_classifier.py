"""Unit tests for the essentiality classifier.

Tests:
- Index bands and their closed upper ends
- Probability downgrade of essential calls
- Unclassified genes (undefined statistics) and capped genes
- Table labelling
"""

import numpy as np
import pandas as pd
import pytest

from tnessentials.classifier import (
    LABEL_CODES,
    EssentialityLabel,
    classify,
    classify_jit,
    classify_table,
)
from tnessentials.local_density import GeneInsertionStats
from tnessentials.threshold_fitter import EssentialityThresholds


@pytest.fixture
def thresholds():
    return EssentialityThresholds(lower_t=0.2, upper_t=0.5, separation=0.3, second_mode=1.0,
                                  f1=0.3, f2=0.7, exponential_rate=15, gamma_shape=4, gamma_rate=4)


def gene(index, probability):
    return GeneInsertionStats(locus_tag="g", gene_length=1000, n_insertions_central=0,
                              n_window_central=100, window_width=20000,
                              insertion_index=index, insertion_probability=probability)


@pytest.mark.parametrize("index,expected", [
    (0.0, EssentialityLabel.ESSENTIAL),
    (0.2, EssentialityLabel.ESSENTIAL),
    (0.21, EssentialityLabel.AMBIGUOUS),
    (0.5, EssentialityLabel.AMBIGUOUS),
    (0.51, EssentialityLabel.NON_ESSENTIAL),
    (7.0, EssentialityLabel.NON_ESSENTIAL),
])
def test_index_bands(thresholds, index, expected):
    assert classify(gene(index, 0.01), thresholds) == expected


def test_high_probability_downgrades_essential(thresholds):
    assert classify(gene(0.0, 0.1), thresholds) == EssentialityLabel.AMBIGUOUS
    assert classify(gene(0.0, 0.09), thresholds) == EssentialityLabel.ESSENTIAL


def test_probability_never_upgrades(thresholds):
    """A low probability does not pull a non-essential gene down."""
    assert classify(gene(2.0, 0.0), thresholds) == EssentialityLabel.NON_ESSENTIAL
    assert classify(gene(0.3, 0.0), thresholds) == EssentialityLabel.AMBIGUOUS


def test_custom_override(thresholds):
    assert classify(gene(0.1, 0.3), thresholds, probability_override=0.5) == EssentialityLabel.ESSENTIAL


def test_zero_index_never_non_essential(thresholds):
    for probability in np.linspace(0, 1, 11):
        assert classify(gene(0.0, probability), thresholds) != EssentialityLabel.NON_ESSENTIAL


def test_undefined_statistics_unclassified(thresholds):
    assert classify(gene(np.nan, 0.5), thresholds) == EssentialityLabel.UNCLASSIFIED
    assert classify(gene(None, None), thresholds) == EssentialityLabel.UNCLASSIFIED
    assert classify(gene(0.1, np.nan), thresholds) == EssentialityLabel.UNCLASSIFIED


def test_capped_index_labelled_by_thresholds(thresholds):
    assert classify(gene(150.0, 1.0), thresholds) == EssentialityLabel.NON_ESSENTIAL


def test_classification_is_idempotent(thresholds):
    stats = gene(0.35, 0.2)

    assert {classify(stats, thresholds) for _ in range(5)} == {EssentialityLabel.AMBIGUOUS}


def test_label_codes_cover_all_labels():
    assert set(LABEL_CODES.values()) == set(EssentialityLabel)
    assert EssentialityLabel.NON_ESSENTIAL == "non-essential"


def test_classify_jit_codes():
    codes = classify_jit(np.array([0.0, 0.3, 1.0, np.nan]),
                         np.array([0.0, 0.0, 0.0, 0.0]),
                         0.2, 0.5, 0.1)

    assert codes.tolist() == [1, 2, 3, 0]


def test_classify_table(thresholds):
    genes = pd.DataFrame({"locus_tag": ["a", "b", "c", "d", "e"],
                          "insertion_index": [0.0, 0.0, 0.4, 1.2, np.nan],
                          "insertion_probability": [0.001, 0.6, 0.2, 1.0, np.nan],
                          "fit_excluded": [False, False, False, False, True]})
    labelled = classify_table(genes, thresholds)

    assert labelled["essentiality_label"].tolist() == [
        "essential", "ambiguous", "ambiguous", "non-essential", "unclassified"]
    assert "essentiality_label" not in genes.columns


def test_classify_table_capped_gene_agrees_with_classify(thresholds):
    """Genes above the index cap are only left out of the fit."""
    genes = pd.DataFrame({"locus_tag": ["busy"],
                          "insertion_index": [200.0],
                          "insertion_probability": [1.0],
                          "fit_excluded": [True]})
    labelled = classify_table(genes, thresholds)

    assert labelled["essentiality_label"].tolist() == ["non-essential"]
    assert classify(gene(200.0, 1.0), thresholds).value == "non-essential"
