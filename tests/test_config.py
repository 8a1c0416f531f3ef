"""Unit tests for run configuration and the helper functions behind it.

Tests:
- Variables defaults and validation
- Round trip through the cmd_input.txt file
- File discovery for the command line
"""

import pytest

from tnessentials.Essential_Finder import Variables, inputs
from tnessentials.extras.exceptions import ConfigurationError
from tnessentials.extras.helper_functions import (
    file_finder,
    gff_parser,
    gff_sequence_region,
    variables_parser,
    variables_writer,
)


def test_variables_defaults():
    variables = Variables()

    assert variables.window_bp == 20000
    assert variables.read_floor == 1
    assert variables.central_margin == (0.1, 0.9)
    assert variables.likelihood_ratio == 5
    assert variables.fit_cutoff == 3
    assert variables.index_cap == 100
    assert variables.probability_override == 0.1
    assert variables.min_population == 10
    assert variables.output_name == "strain_essentiality"


@pytest.mark.parametrize("kwargs", [
    {"window_bp": 0},
    {"central_start": 0.9, "central_end": 0.1},
    {"central_end": 1.5},
    {"likelihood_ratio": 1},
    {"probability_override": 1.2},
    {"fit_cutoff": -1},
    {"cpus": 0},
    {"lowess_frac": 0},
])
def test_invalid_variables_rejected(kwargs):
    with pytest.raises(ConfigurationError):
        Variables(**kwargs)


def test_from_dict_casts_strings():
    variables = Variables.from_dict({"strain": "PA14", "window_bp": "15000",
                                     "likelihood_ratio": "4", "plots": "False",
                                     "feature_file": "None", "unknown_key": "x"})

    assert variables.strain == "PA14"
    assert variables.window_bp == 15000
    assert variables.likelihood_ratio == 4.0
    assert variables.plots is False
    assert variables.feature_file is None


def test_from_dict_rejects_bad_number():
    with pytest.raises(ConfigurationError):
        Variables.from_dict({"window_bp": "wide"})


def test_configuration_file_round_trip(tmp_path):
    path = tmp_path / "cmd_input.txt"
    variables_writer(str(path), {"strain": "PA14", "window_bp": 10000, "read_floor": 2,
                                 "central_start": 0.05, "plots": False, "feature_file": None,
                                 "directory": "/data/run : one"})

    parsed = variables_parser(str(path))
    variables = inputs(str(path))

    assert "feature_file" not in parsed
    assert parsed["directory"] == "/data/run : one"
    assert variables.window_bp == 10000
    assert variables.read_floor == 2
    assert variables.central_margin == (0.05, 0.9)
    assert variables.plots is False


def test_file_finder(tmp_path):
    (tmp_path / "PA14_features.csv").write_text("x")
    (tmp_path / "PA14_insertions.csv").write_text("x")
    (tmp_path / "other.gb").write_text("x")

    assert file_finder(str(tmp_path), ["*.csv"], "PA14_insertions").endswith("PA14_insertions.csv")
    assert file_finder(str(tmp_path), ["*.gb"], "PA14") == []
    assert len(file_finder(str(tmp_path), ["*.csv", "*.gb"])) == 3


def test_gff_parser_header_and_fasta():
    assert gff_parser(["##gff-version 3"]) == {}
    assert gff_parser(["##FASTA"]) is None
    assert gff_sequence_region("##sequence-region chrA 1 4200\n") == ("chrA", 4200)
    assert gff_sequence_region("chrA\tsrc\tgene") is None
