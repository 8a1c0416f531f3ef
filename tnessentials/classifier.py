import numpy as np
from enum import Enum
from numba import njit

""" Three-way essentiality call from the insertion index, with the insertion
    probability as a guard against sparse regions posing as essential genes.
"""


class EssentialityLabel(str, Enum):
    ESSENTIAL = "essential"
    AMBIGUOUS = "ambiguous"
    NON_ESSENTIAL = "non-essential"
    UNCLASSIFIED = "unclassified"


LABEL_CODES = {0: EssentialityLabel.UNCLASSIFIED,
               1: EssentialityLabel.ESSENTIAL,
               2: EssentialityLabel.AMBIGUOUS,
               3: EssentialityLabel.NON_ESSENTIAL}


@njit
def classify_jit(index, probability, lower_t, upper_t, probability_override):
    ''' Label codes (see LABEL_CODES) for arrays of gene statistics. Genes
    without a defined index or probability stay unclassified (0). An essential
    call whose zero-ish count is still plausible under the local binomial
    model (probability >= override) is downgraded to ambiguous. '''

    labels = np.zeros(len(index), dtype=np.int64)
    for i in range(len(index)):
        if np.isnan(index[i]) or np.isnan(probability[i]):
            continue
        if index[i] <= lower_t:
            if probability[i] >= probability_override:
                labels[i] = 2
            else:
                labels[i] = 1
        elif index[i] <= upper_t:
            labels[i] = 2
        else:
            labels[i] = 3
    return labels


def classify(gene_stats, thresholds, probability_override=0.1) -> EssentialityLabel:
    """
    Label of one gene.

    Parameters
    ----------
    gene_stats : GeneInsertionStats
        Anything with insertion_index and insertion_probability attributes.
        None or NaN statistics give an unclassified gene.
    thresholds : EssentialityThresholds
        Fitted lower_t and upper_t.
    probability_override : float
        Insertion probability at or above which an essential call becomes
        ambiguous.
    """
    index, probability = gene_stats.insertion_index, gene_stats.insertion_probability
    code = classify_jit(np.array([np.nan if index is None else index], dtype=np.float64),
                        np.array([np.nan if probability is None else probability], dtype=np.float64),
                        thresholds.lower_t,
                        thresholds.upper_t,
                        probability_override)[0]
    return LABEL_CODES[int(code)]


def classify_table(genes, thresholds, probability_override=0.1):
    ''' Adds an essentiality_label column to a gene statistics table (output
    of local_density.estimate_all). Genes left out of the fit by the index cap
    are still labelled by the thresholds. Returns a new table. '''

    codes = classify_jit(genes["insertion_index"].to_numpy(dtype=np.float64),
                         genes["insertion_probability"].to_numpy(dtype=np.float64),
                         float(thresholds.lower_t),
                         float(thresholds.upper_t),
                         float(probability_override))
    return genes.assign(essentiality_label=[LABEL_CODES[int(c)].value for c in codes])
