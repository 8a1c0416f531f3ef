import multiprocessing
import numpy as np
import pandas as pd
from dataclasses import dataclass, field
from typing import Dict
from tnessentials.extras.helper_functions import colourful_errors

""" Maps every insertion of the pool onto the gene holding it and counts
    insertions per gene. Only insertions in the central part of a gene body
    are used for essentiality, since transposons near the gene termini often
    leave a working protein behind.
"""

INTERGENIC = "intergenic"


@dataclass(frozen=True)
class AnnotatedInsertions:
    """
    Result of `annotate`.

    Attributes:
        insertions (pd.DataFrame): One row per kept barcode with the mapped
            locus tag (None when intergenic), relative position in the gene
            and the central flag.
        gene_counts (pd.DataFrame): One row per gene of the index, genes
            without insertions included with zero counts.
        noise_barcodes (int): Barcodes dropped by the read floor.
        duplicate_records (int): Extra rows of repeated barcodes that were dropped.
        ambiguous_barcodes (int): Kept barcodes that also map elsewhere.
        feature_summary (Dict[str, int]): Barcodes per feature type.
    """

    insertions: pd.DataFrame
    gene_counts: pd.DataFrame
    noise_barcodes: int = 0
    duplicate_records: int = 0
    ambiguous_barcodes: int = 0
    feature_summary: Dict[str, int] = field(default_factory=dict)

    @property
    def total_central(self):
        return int(self.insertions["central"].sum())

    def central_positions(self, replicon):
        ''' Sorted positions of the central insertions of one replicon. '''
        subset = self.insertions[(self.insertions["replicon"] == replicon) & self.insertions["central"]]
        return np.sort(subset["position"].to_numpy(dtype=np.int64))


def noise_filter(insertions, read_floor):
    ''' Drops barcodes whose total read count is at or below `read_floor`.
    Returns the kept rows and the number of barcodes removed. '''

    totals = insertions.groupby("barcode")["read_count"].transform("sum")
    kept = insertions[totals > read_floor]
    removed = insertions.loc[totals <= read_floor, "barcode"].nunique()
    return kept, int(removed)


def primary_mapping(insertions):
    ''' Keeps one row per barcode: the one with the most reads, the first one
    in table order on ties. Multi-site barcodes are therefore counted once, at
    their primary site only. '''

    order = insertions.assign(_row=np.arange(len(insertions)))
    order = order.sort_values(["read_count", "_row"], ascending=[False, True], kind="mergesort")
    kept = order.drop_duplicates(subset="barcode", keep="first").sort_values("_row")
    return kept.drop(columns="_row"), len(insertions) - len(kept)


def _locate_chunk(index, replicon, positions):
    return index.locate_many(replicon, positions)


def gene_locator(insertions, index, cpus=1):
    """
    Index of the containing gene for every insertion.

    Parameters
    ----------
    insertions : pandas.DataFrame
        Needs replicon and position columns.
    index : IntervalIndex
        Read-only gene index.
    cpus : int
        With more than one, chunks of positions are located over a process
        pool. The index is never written to, so workers share it safely.

    Returns
    -------
    numpy.ndarray
        Position of the gene in `index.genes(replicon)`, -1 for intergenic.
    """
    hits = np.full(len(insertions), -1, dtype=np.int64)
    replicons = insertions["replicon"].to_numpy()
    positions = insertions["position"].to_numpy(dtype=np.int64)

    jobs = []
    for replicon in pd.unique(replicons):
        rows = np.flatnonzero(replicons == replicon)
        for chunk in np.array_split(rows, max(1, cpus)):
            if len(chunk):
                jobs.append((replicon, chunk))

    if (cpus > 1) and (len(jobs) > 1):
        result_objs = []
        pool = multiprocessing.Pool(processes = cpus)
        for replicon, chunk in jobs:
            result = pool.apply_async(_locate_chunk, args=((index, replicon, positions[chunk])))
            result_objs.append((chunk, result))
        pool.close()
        pool.join()
        for chunk, result in result_objs:
            hits[chunk] = result.get()
    else:
        for replicon, chunk in jobs:
            hits[chunk] = index.locate_many(replicon, positions[chunk])

    return hits


def annotate(insertions, index, read_floor=1, central_margin=(0.1, 0.9), cpus=1):
    """
    Filter the insertion pool, map it onto genes and count insertions per gene.

    Parameters
    ----------
    insertions : pandas.DataFrame
        Validated insertion pool (see tables.validate_insertions).
    index : IntervalIndex
        Gene index of the reference genome.
    read_floor : int
        Barcodes with at most this many reads are noise.
    central_margin : tuple of float
        Relative gene positions (inclusive) that count as central.
    cpus : int
        Processes used for the gene lookup.

    Returns
    -------
    AnnotatedInsertions
    """

    kept, noise = noise_filter(insertions, read_floor)
    kept, duplicates = primary_mapping(kept)
    kept = kept.reset_index(drop=True)

    if noise:
        colourful_errors("INFO",
            f"{noise} barcodes with {read_floor} or fewer reads were discarded as noise.")
    if duplicates:
        colourful_errors("WARNING",
            f"{duplicates} extra records of repeated barcodes were dropped, keeping the best supported site.")

    ambiguous = int((kept["secondary_position_count"] > 0).sum())
    if ambiguous:
        colourful_errors("INFO",
            f"{ambiguous} barcodes also map to secondary sites; only their primary site is used.")

    hits = gene_locator(kept, index, cpus)

    locus_tags = np.full(len(kept), None, dtype=object)
    starts = np.full(len(kept), np.nan)
    ends = np.full(len(kept), np.nan)
    for i, (replicon, hit) in enumerate(zip(kept["replicon"], hits)):
        if hit >= 0:
            gene = index.replicons[replicon].features[hit]
            locus_tags[i] = gene.locus_tag
            starts[i] = gene.start
            ends[i] = gene.end

    positions = kept["position"].to_numpy(dtype=float)
    with np.errstate(invalid="ignore"):
        relative = (positions - starts) / (ends - starts)
    central = (relative >= central_margin[0]) & (relative <= central_margin[1])

    annotated = kept.assign(locus_tag=locus_tags,
                            relative_position=relative,
                            central=central)

    gene_counts = gene_counter(annotated, index)

    mapped = int((hits >= 0).sum())
    feature_summary = {"gene": mapped,
                       INTERGENIC: len(kept) - mapped}

    colourful_errors("INFO",
        f"{mapped} insertions fall in genes ({int(central.sum())} central), {len(kept) - mapped} are intergenic.")

    return AnnotatedInsertions(insertions=annotated,
                               gene_counts=gene_counts,
                               noise_barcodes=noise,
                               duplicate_records=duplicates,
                               ambiguous_barcodes=ambiguous,
                               feature_summary=feature_summary)


def gene_counter(annotated, index):
    ''' Total and central insertion counts for every gene of the index. Genes
    without insertions get an explicit zero row. '''

    genes = pd.DataFrame([{"locus_tag": g.locus_tag,
                           "replicon": g.replicon,
                           "start": g.start,
                           "end": g.end,
                           "strand": g.strand,
                           "description": g.description,
                           "gene_length": g.length} for g in index.genes()],
                         columns=["locus_tag", "replicon", "start", "end",
                                  "strand", "description", "gene_length"])

    in_genes = annotated[annotated["locus_tag"].notna()]
    totals = in_genes.groupby(["replicon", "locus_tag"]).size().rename("n_insertions_total")
    centrals = in_genes[in_genes["central"]].groupby(["replicon", "locus_tag"]).size().rename("n_insertions_central")

    genes = genes.merge(totals, how="left", left_on=["replicon", "locus_tag"], right_index=True)
    genes = genes.merge(centrals, how="left", left_on=["replicon", "locus_tag"], right_index=True)
    genes[["n_insertions_total", "n_insertions_central"]] = \
        genes[["n_insertions_total", "n_insertions_central"]].fillna(0).astype(np.int64)
    return genes
