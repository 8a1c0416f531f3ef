import os
import numpy as np
import pandas as pd
from Bio import SeqIO
from tnessentials.interval_index import GeneFeature
from tnessentials.extras.exceptions import InputTableError
from tnessentials.extras.helper_functions import colourful_errors,gb_parser,gff_parser,gff_sequence_region

""" Loading and validation of the two input tables: the reference genome
    feature table (flat table, GenBank or GFF3) and the insertion pool table.
    Bad rows stop the run here, with the offending rows in the error.
"""

FEATURE_COLUMNS = ["locus_tag", "replicon", "start", "end", "strand"]
INSERTION_COLUMNS = ["barcode", "replicon", "position", "read_count"]
GENBANK_EXTENSIONS = (".gb", ".gbk", ".gbff", ".genbank")
GFF_EXTENSIONS = (".gff", ".gff3")


def table_reader(path):
    ''' Reads a csv or tab separated table, picking the separator from the
    file extension. '''
    sep = "\t" if str(path).lower().endswith((".tsv", ".tab", ".txt")) else ","
    return pd.read_csv(path, sep=sep, dtype=str, keep_default_na=False)


def _missing_columns(df, required, table):
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise InputTableError(f"{table} table is missing columns {missing}")


def _as_integers(df, column, table):
    values = pd.to_numeric(df[column].astype(str).str.strip(), errors="coerce")
    bad = values.isna() | (values % 1 != 0)
    if bad.any():
        raise InputTableError(f"{table} table has non-integer '{column}' values",
                              df.loc[bad].to_dict("records"))
    return values.astype(np.int64)


def validate_features(df):
    """
    Check a feature table and turn it into GeneFeature records.

    Parameters
    ----------
    df : pandas.DataFrame
        Table with columns locus_tag, replicon, start, end, strand and
        optionally description.

    Returns
    -------
    list of GeneFeature
        One record per row, in table order.

    Raises
    ------
    InputTableError
        Missing columns, empty identifiers, non-integer or inverted
        coordinates, unknown strands, or a locus tag repeated on a replicon.
    """
    _missing_columns(df, FEATURE_COLUMNS, "Feature")
    df = df.copy()
    if "description" not in df.columns:
        df["description"] = ""
    df["description"] = df["description"].fillna("")

    for column in ("locus_tag", "replicon", "strand"):
        df[column] = df[column].astype(str).str.strip()
        empty = df[column] == ""
        if empty.any():
            raise InputTableError(f"Feature table has empty '{column}' values",
                                  df.loc[empty].to_dict("records"))

    df["start"] = _as_integers(df, "start", "Feature")
    df["end"] = _as_integers(df, "end", "Feature")

    inverted = (df["start"] < 0) | (df["start"] >= df["end"])
    if inverted.any():
        raise InputTableError("Feature table rows must satisfy 0 <= start < end",
                              df.loc[inverted].to_dict("records"))

    strand = ~df["strand"].isin(["+", "-"])
    if strand.any():
        raise InputTableError("Feature table strand must be '+' or '-'",
                              df.loc[strand].to_dict("records"))

    duplicated = df.duplicated(subset=["replicon", "locus_tag"], keep=False)
    if duplicated.any():
        raise InputTableError("Feature table repeats locus tags within a replicon",
                              df.loc[duplicated].to_dict("records"))

    return [GeneFeature(locus_tag=row.locus_tag,
                        replicon=row.replicon,
                        start=int(row.start),
                        end=int(row.end),
                        strand=row.strand,
                        description=str(row.description))
            for row in df.itertuples(index=False)]


def validate_insertions(df):
    """
    Check an insertion pool table and normalise its dtypes.

    Duplicate barcodes are allowed here: they are resolved later by the
    insertion annotator, which keeps the primary mapping only.

    Returns
    -------
    pandas.DataFrame
        Columns barcode, replicon, position, read_count and
        secondary_position_count (0 when the column is absent).
    """
    _missing_columns(df, INSERTION_COLUMNS, "Insertion")
    df = df.copy()
    if "secondary_position_count" not in df.columns:
        df["secondary_position_count"] = "0"
    df["secondary_position_count"] = df["secondary_position_count"].replace("", "0")

    for column in ("barcode", "replicon"):
        df[column] = df[column].astype(str).str.strip()
        empty = df[column] == ""
        if empty.any():
            raise InputTableError(f"Insertion table has empty '{column}' values",
                                  df.loc[empty].to_dict("records"))

    for column in ("position", "read_count", "secondary_position_count"):
        df[column] = _as_integers(df, column, "Insertion")
        negative = df[column] < 0
        if negative.any():
            raise InputTableError(f"Insertion table has negative '{column}' values",
                                  df.loc[negative].to_dict("records"))

    return df[["barcode", "replicon", "position", "read_count", "secondary_position_count"]].reset_index(drop=True)


def features_from_genbank(path):
    ''' Gene features and replicon lengths from a GenBank file. "gene"
    features are used; records without them fall back to "CDS". '''

    rows, lengths = [], {}
    for rec in SeqIO.parse(path, "genbank"):
        lengths[rec.id] = len(rec.seq)
        kinds = {f.type for f in rec.features}
        wanted = "gene" if "gene" in kinds else "CDS"
        for feature in rec.features:
            if feature.type != wanted:
                continue
            gene_info = gb_parser(feature)
            if gene_info["locus_tag"] is None:
                continue
            gene_info["replicon"] = rec.id
            rows.append(gene_info)
    return rows, lengths


def features_from_gff(path):
    ''' Gene features and replicon lengths from a GFF3 file. '''

    rows, lengths = [], {}
    with open(path) as current:
        for line in current:
            region = gff_sequence_region(line)
            if region is not None:
                lengths[region[0]] = region[1]
                continue
            gene_info = gff_parser(line.rstrip("\n").split("\t"))
            if gene_info is None:
                break
            if gene_info:
                rows.append(gene_info)

    kinds = {r["type"] for r in rows}
    wanted = "gene" if "gene" in kinds else "CDS"
    rows = [r for r in rows if r["type"] == wanted and r["locus_tag"]]
    return rows, lengths


def load_features(path):
    """
    Load the reference genome features.

    Returns
    -------
    tuple
        (list of GeneFeature, dict of replicon lengths). The lengths are only
        known for annotation formats; flat tables give an empty dictionary.
    """
    if not os.path.isfile(path):
        raise InputTableError(f"Feature file {path} does not exist")

    lowered = str(path).lower()
    if lowered.endswith(GENBANK_EXTENSIONS):
        rows, lengths = features_from_genbank(path)
    elif lowered.endswith(GFF_EXTENSIONS):
        rows, lengths = features_from_gff(path)
    else:
        return validate_features(table_reader(path)), {}

    if len(rows) == 0:
        raise InputTableError(f"No gene features with locus tags were found in {path}")

    df = pd.DataFrame(rows, columns=FEATURE_COLUMNS + ["description"]).astype(str)
    features = validate_features(df)
    colourful_errors("INFO",
        f"Loaded {len(features)} genes across {len({f.replicon for f in features})} replicons.")
    return features, lengths


def load_insertions(path):
    if not os.path.isfile(path):
        raise InputTableError(f"Insertion file {path} does not exist")
    insertions = validate_insertions(table_reader(path))
    colourful_errors("INFO",
        f"Loaded {len(insertions)} barcodes from the insertion pool.")
    return insertions
