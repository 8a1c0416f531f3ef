import os
import sys
import pandas as pd
from dataclasses import dataclass, field
from typing import Optional, Dict
from tnessentials.tables import load_features,load_insertions
from tnessentials.interval_index import IntervalIndex
from tnessentials.insertion_annotator import annotate,AnnotatedInsertions,INTERGENIC
from tnessentials.local_density import estimate_all
from tnessentials.threshold_fitter import ThresholdFitter,EssentialityThresholds,strategy_picker
from tnessentials.classifier import classify_table,EssentialityLabel
from tnessentials.fit_plotter import fit_plotter,label_plotter
from tnessentials.extras.exceptions import ConfigurationError
from tnessentials.extras.helper_functions import colourful_errors,csv_writer,variables_parser

""" Gene essentiality calling from a transposon insertion pool.

    Insertions are mapped onto genes, each gene's central insertion density is
    compared with its genomic neighbourhood, and the genome-wide distribution
    of that ratio is split into essential, ambiguous and non-essential genes
    by a two-component mixture fit.
"""

GENE_COLUMNS = ["locus_tag", "replicon", "start", "end", "strand", "description",
                "gene_length", "n_insertions_total", "n_insertions_central",
                "n_window_central", "window_width", "insertion_index",
                "insertion_probability", "fit_excluded"]

@dataclass(frozen=True)
class Variables:
    """
    Run configuration. Built once from the command line (through the
    cmd_input.txt file) and handed to every stage.
    """

    directory: str = "."
    strain: str = "strain"
    feature_file: Optional[str] = None
    insertion_file: Optional[str] = None
    window_bp: int = 20000
    read_floor: int = 1
    central_start: float = 0.1
    central_end: float = 0.9
    likelihood_ratio: float = 5.0
    fit_cutoff: float = 3.0
    index_cap: float = 100.0
    probability_override: float = 0.1
    min_population: int = 10
    lowess_frac: float = 0.2
    grid_points: int = 10000
    refine_iterations: int = 20
    strategy: str = "mle"
    cpus: int = 1
    plots: bool = True

    def __post_init__(self):
        if self.window_bp <= 0:
            raise ConfigurationError(f"window_bp must be positive, got {self.window_bp}")
        if not (0 <= self.central_start < self.central_end <= 1):
            raise ConfigurationError(
                f"central margins must satisfy 0 <= start < end <= 1, got {self.central_start}-{self.central_end}")
        if self.likelihood_ratio <= 1:
            raise ConfigurationError(f"likelihood_ratio must be above 1, got {self.likelihood_ratio}")
        if not (0 <= self.probability_override <= 1):
            raise ConfigurationError(f"probability_override must be within [0, 1], got {self.probability_override}")
        if self.fit_cutoff <= 0 or self.index_cap <= 0:
            raise ConfigurationError("fit_cutoff and index_cap must be positive")
        if self.read_floor < 0 or self.min_population < 1 or self.cpus < 1:
            raise ConfigurationError("read_floor, min_population and cpus must be non-negative/positive integers")
        if not (0 < self.lowess_frac <= 1):
            raise ConfigurationError(f"lowess_frac must be within (0, 1], got {self.lowess_frac}")

    @property
    def central_margin(self):
        return (self.central_start, self.central_end)

    @property
    def output_name(self):
        return f"{self.strain}_essentiality"

    @classmethod
    def from_dict(cls, values):
        ''' Builds a Variables from string values (as read by
        variables_parser), casting each one to its field type. Unknown keys
        are ignored. '''

        casts = {int: int, float: float, str: str,
                 bool: lambda v: str(v).strip().lower() in ("true", "1", "yes"),
                 Optional[str]: str}
        kwargs = {}
        for name, declared in cls.__dataclass_fields__.items():
            if name in values and values[name] not in (None, "None", ""):
                try:
                    kwargs[name] = casts[declared.type](values[name])
                except ValueError as e:
                    raise ConfigurationError(f"invalid value for {name}: {values[name]}") from e
        return cls(**kwargs)


@dataclass(frozen=True)
class EssentialityResult:
    """
    Everything a run produces.

    Attributes:
        genes (pd.DataFrame): Per-gene statistics and essentiality labels.
        thresholds (EssentialityThresholds): The fitted thresholds.
        annotated (AnnotatedInsertions): Per-insertion mapping and bookkeeping.
    """

    genes: pd.DataFrame
    thresholds: EssentialityThresholds
    annotated: AnnotatedInsertions
    label_counts: Dict[str, int] = field(default_factory=dict)


def inputs(argv):
    ''' Reads the "key : value" configuration file written by the command
    line into a Variables instance. '''
    return Variables.from_dict(variables_parser(argv))


def insertion_statistics(variables, features=None, replicon_lengths=None, insertions=None):
    """
    Map the insertion pool onto the genome and compute per-gene statistics.

    Features and insertions are loaded from the configured files unless given.

    Returns
    -------
    tuple
        (AnnotatedInsertions, per-gene statistics DataFrame)
    """
    if features is None:
        colourful_errors("INFO", "Parsing gene annotations.")
        features, replicon_lengths = load_features(variables.feature_file)
    if insertions is None:
        insertions = load_insertions(variables.insertion_file)

    index = IntervalIndex.build(features)

    colourful_errors("INFO", "Mapping insertions to genes.")
    annotated = annotate(insertions, index,
                         read_floor=variables.read_floor,
                         central_margin=variables.central_margin,
                         cpus=variables.cpus)

    colourful_errors("INFO", "Estimating local insertion densities.")
    genes = estimate_all(annotated,
                         window_bp=variables.window_bp,
                         replicon_lengths=replicon_lengths,
                         central_margin=variables.central_margin,
                         index_cap=variables.index_cap)
    return annotated, genes


def essentiality_calls(genes, variables):
    ''' Fits the thresholds on the eligible genes and labels every gene. A fit
    failure propagates, so no labels are produced from undefined thresholds. '''

    fitter = ThresholdFitter(strategy=strategy_picker(variables.strategy, lowess_frac=variables.lowess_frac),
                             fit_cutoff=variables.fit_cutoff,
                             likelihood_ratio=variables.likelihood_ratio,
                             min_population=variables.min_population,
                             grid_points=variables.grid_points,
                             refine_iterations=variables.refine_iterations)

    colourful_errors("INFO", "Fitting the insertion index mixture.")
    thresholds = fitter.fit(genes.loc[~genes["fit_excluded"], "insertion_index"])
    labelled = classify_table(genes, thresholds, variables.probability_override)
    return thresholds, labelled


def result_compiler(annotated, thresholds, genes):
    label_counts = {label.value: int((genes["essentiality_label"] == label.value).sum())
                    for label in EssentialityLabel}
    return EssentialityResult(genes=genes,
                              thresholds=thresholds,
                              annotated=annotated,
                              label_counts=label_counts)


def run(variables, features=None, replicon_lengths=None, insertions=None):
    ''' The whole computation without any file output. '''
    annotated, genes = insertion_statistics(variables, features, replicon_lengths, insertions)
    thresholds, genes = essentiality_calls(genes, variables)
    return result_compiler(annotated, thresholds, genes)


def output_writer(output_folder, name_folder, output_file):
    output_file_path = os.path.join(output_folder, name_folder + ".csv")
    csv_writer(output_file_path,output_file)
    return output_file_path


def statistics_writer(variables, genes, annotated):
    path = os.path.join(variables.directory, f"{variables.output_name}_insertion_stats.csv")
    genes[GENE_COLUMNS].to_csv(path, index=False)
    annotated.insertions.to_csv(os.path.join(variables.directory, f"{variables.output_name}_annotated_insertions.csv"),
                                index=False, na_rep="")
    return path


def final_compiler(variables, result):
    ''' Writes the per-gene essentiality table, the thresholds, the run log
    and (optionally) the diagnostic plots. '''

    result.genes[GENE_COLUMNS + ["essentiality_label"]].to_csv(
        os.path.join(variables.directory, f"{variables.output_name}.csv"), index=False)
    output_writer(variables.directory, f"{variables.output_name}_thresholds", result.thresholds.as_rows())

    annotated, thresholds = result.annotated, result.thresholds
    stats_file = f"""\n    ####\nESSENTIALITY INFO\n    ####\n\nBarcodes kept after noise filtering: {len(annotated.insertions)}\nBarcodes discarded as noise (reads <= {variables.read_floor}): {annotated.noise_barcodes}\nRepeated barcode records dropped: {annotated.duplicate_records}\nBarcodes with secondary sites (primary kept): {annotated.ambiguous_barcodes}\nBarcodes in genes: {annotated.feature_summary.get("gene", 0)}\nIntergenic barcodes: {annotated.feature_summary.get(INTERGENIC, 0)}\nCentral insertions: {annotated.total_central}\nLocal window: {variables.window_bp}bp\nFitting strategy: {thresholds.strategy}\nPopulation split: {thresholds.separation:.4f} (second mode {thresholds.second_mode:.4f})\nExponential rate: {thresholds.exponential_rate:.4f} (f1 {thresholds.f1:.4f}, {thresholds.n_low} genes)\nGamma shape/rate: {thresholds.gamma_shape:.4f}/{thresholds.gamma_rate:.4f} (f2 {thresholds.f2:.4f}, {thresholds.n_high} genes)\nLower threshold: {thresholds.lower_t:.4f}\nUpper threshold: {thresholds.upper_t:.4f}\n"""
    for label, count in result.label_counts.items():
        stats_file += f"Number of {label} genes: {count}\n"

    with open(os.path.join(variables.directory, "Essentiality_stats.log"), "w+") as text_file:
        text_file.write(stats_file)

    if variables.plots:
        fit_plotter(result.genes.loc[~result.genes["fit_excluded"], "insertion_index"],
                    thresholds, variables.directory, variables.output_name)
        label_plotter(result.genes, variables.directory, variables.output_name)


def main(argv):
    ''' Loads the configuration, computes the insertion statistics (written
    out before fitting so they survive a failed fit), fits the thresholds,
    labels the genes and writes the results. '''

    variables = inputs(argv)
    if not os.path.isdir(variables.directory):
        os.makedirs(variables.directory)

    annotated, genes = insertion_statistics(variables)
    statistics_writer(variables, genes, annotated)

    thresholds, genes = essentiality_calls(genes, variables)
    result = result_compiler(annotated, thresholds, genes)
    final_compiler(variables, result)

    for label, count in result.label_counts.items():
        colourful_errors("INFO", f"{count} genes called {label}.")
    return result

if __name__ == "__main__":
    main(sys.argv[1])
