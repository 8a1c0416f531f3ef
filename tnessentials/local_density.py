import numpy as np
from scipy.stats import binom
from dataclasses import dataclass
from tnessentials.extras.helper_functions import colourful_errors

""" Local insertion pressure around each gene.

    Every gene gets a window of `window_bp` centred on its midpoint (widened
    to the gene itself for genes longer than the window, and slid back inside
    the replicon at its ends so the width stays constant). The central
    insertions in that window give the expected local density, from which the
    insertion index and the binomial insertion probability are derived.
"""


@dataclass(frozen=True)
class GeneInsertionStats:
    """
    Insertion statistics of one gene.

    Attributes:
        locus_tag (str): Gene identifier.
        gene_length (int): Gene length in bp.
        n_insertions_central (int): Central insertions in the gene.
        n_window_central (int): Central insertions in the local window.
        window_width (float): Width of the local window in bp.
        insertion_index (float): Gene density over window density, >= 0.
        insertion_probability (float): P(X <= n_insertions_central) under the
            local binomial model, in [0, 1].
    """

    locus_tag: str
    gene_length: int
    n_insertions_central: int
    n_window_central: int
    window_width: float
    insertion_index: float
    insertion_probability: float


def window_bounds(starts, ends, window_bp, replicon_length=None):
    """
    Centred windows for a set of genes.

    Parameters
    ----------
    starts, ends : numpy.ndarray
        Gene coordinates.
    window_bp : int
        Window width.
    replicon_length : int, optional
        When given, windows are slid to stay within [0, replicon_length] and
        capped at the replicon length.

    Returns
    -------
    tuple of numpy.ndarray
        (lower bound, upper bound, width) of every window.
    """
    starts = np.asarray(starts, dtype=float)
    ends = np.asarray(ends, dtype=float)
    width = np.maximum(float(window_bp), ends - starts)
    if replicon_length is not None:
        span = max(float(replicon_length), ends.max() if len(ends) else 0.0)
        width = np.minimum(width, span)

    lower = (starts + ends) / 2 - width / 2
    upper = lower + width

    if replicon_length is not None:
        shift_up = np.where(lower < 0, -lower, 0.0)
        lower, upper = lower + shift_up, upper + shift_up
        shift_down = np.where(upper > span, upper - span, 0.0)
        lower, upper = lower - shift_down, upper - shift_down

    return lower, upper, width


def window_counts(central_positions, lower, upper):
    ''' Central insertions inside each closed window, by binary search on the
    sorted positions. '''
    central_positions = np.asarray(central_positions)
    left = np.searchsorted(central_positions, lower, side="left")
    right = np.searchsorted(central_positions, upper, side="right")
    return (right - left).astype(np.int64)


def insertion_index(n_gene, gene_length, n_window, window_width):
    ''' (n_gene / gene_length) / (n_window / window_width). Genes without
    central insertions get 0; a gene with insertions always sits inside its own
    window, so n_window is then at least n_gene. '''

    n_gene = np.asarray(n_gene, dtype=float)
    n_window = np.asarray(n_window, dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        index = (n_gene / np.asarray(gene_length, dtype=float)) / (n_window / np.asarray(window_width, dtype=float))
    return np.where(n_gene == 0, 0.0, index)


def insertion_probability(n_gene, gene_length, n_window, window_width, central_fraction=0.8):
    ''' Binomial CDF of the observed central count, with one trial per central
    insertion of the window and a success chance equal to the share of the
    window covered by the central part of the gene. A window without
    insertions gives 1.0: no local pressure makes a zero count unsurprising. '''

    n_window = np.asarray(n_window, dtype=np.int64)
    chance = np.clip(central_fraction * np.asarray(gene_length, dtype=float) / np.asarray(window_width, dtype=float), 0.0, 1.0)
    probability = binom.cdf(np.asarray(n_gene, dtype=np.int64), n_window, chance)
    return np.where(n_window == 0, 1.0, np.clip(probability, 0.0, 1.0))


def estimate(gene, n_central, central_positions, window_bp, replicon_length=None, central_fraction=0.8) -> GeneInsertionStats:
    """
    Insertion index and insertion probability of one gene.

    Parameters
    ----------
    gene : GeneFeature
        The gene.
    n_central : int
        Central insertions mapped to the gene.
    central_positions : array-like of int
        Sorted positions of all central insertions on the gene's replicon.
    window_bp : int
        Local window width.
    replicon_length : int, optional
        Length of the replicon, used to keep the window inside it.
    central_fraction : float
        Share of a gene body where insertions count as central.
    """
    lower, upper, width = window_bounds([gene.start], [gene.end], window_bp, replicon_length)
    n_window = window_counts(central_positions, lower, upper)
    return GeneInsertionStats(locus_tag=gene.locus_tag,
                              gene_length=gene.length,
                              n_insertions_central=int(n_central),
                              n_window_central=int(n_window[0]),
                              window_width=float(width[0]),
                              insertion_index=float(insertion_index(n_central, gene.length, n_window, width)[0]),
                              insertion_probability=float(insertion_probability(n_central, gene.length, n_window, width, central_fraction)[0]))


def estimate_all(annotated, window_bp, replicon_lengths=None, central_margin=(0.1, 0.9), index_cap=100):
    """
    Local density statistics for every gene of an annotated insertion set.

    Parameters
    ----------
    annotated : AnnotatedInsertions
        Output of insertion_annotator.annotate.
    window_bp : int
        Local window width.
    replicon_lengths : dict, optional
        Known replicon lengths. Missing replicons use the furthest gene end or
        insertion position seen on them.
    central_margin : tuple of float
        Central part of the gene body.
    index_cap : float
        Indices above the cap are unreliable and kept out of threshold fitting.

    Returns
    -------
    pandas.DataFrame
        The gene counts table with n_window_central, window_width,
        insertion_index, insertion_probability and fit_excluded added. Genes on
        replicons absent from the insertion pool get NaN index and probability.
    """
    replicon_lengths = replicon_lengths or {}
    central_fraction = central_margin[1] - central_margin[0]
    genes = annotated.gene_counts.copy()
    observed = set(annotated.insertions["replicon"])

    genes["n_window_central"] = 0
    genes["window_width"] = np.nan
    genes["insertion_index"] = np.nan
    genes["insertion_probability"] = np.nan

    for replicon, rows in genes.groupby("replicon").groups.items():
        subset = genes.loc[rows]
        length = replicon_lengths.get(replicon)
        if length is None:
            on_replicon = annotated.insertions.loc[annotated.insertions["replicon"] == replicon, "position"]
            length = max([int(subset["end"].max())] + ([int(on_replicon.max())] if len(on_replicon) else []))

        lower, upper, width = window_bounds(subset["start"].to_numpy(), subset["end"].to_numpy(), window_bp, length)
        genes.loc[rows, "window_width"] = width

        if replicon not in observed:
            colourful_errors("WARNING",
                f"Replicon {replicon} has no insertions in the pool; its {len(rows)} genes stay unclassified.")
            continue

        n_window = window_counts(annotated.central_positions(replicon), lower, upper)
        n_gene = subset["n_insertions_central"].to_numpy()
        gene_length = subset["gene_length"].to_numpy()

        genes.loc[rows, "n_window_central"] = n_window
        genes.loc[rows, "insertion_index"] = insertion_index(n_gene, gene_length, n_window, width)
        genes.loc[rows, "insertion_probability"] = insertion_probability(n_gene, gene_length, n_window, width, central_fraction)

    genes["fit_excluded"] = genes["insertion_index"].isna() | (genes["insertion_index"] > index_cap)
    capped = int((genes["insertion_index"] > index_cap).sum())
    if capped:
        colourful_errors("WARNING",
            f"{capped} genes have an insertion index above {index_cap} and are left out of threshold fitting.")

    return genes
