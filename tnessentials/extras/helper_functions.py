import multiprocessing
from datetime import datetime
from colorama import Fore
import csv
import os
import glob

def cpu():
    """
    Determine the number of available CPU cores, leaving one free.

    Parameters
    ----------
    None

    Returns
    -------
    int
        Number of CPU cores available for processing.
    """
    c = multiprocessing.cpu_count()
    if c >= 2:
        c -= 1
    return c


def colourful_errors(warning_type, error):
    """
    Print a color-coded message with a timestamp.

    Parameters
    ----------
    warning_type : str
        Type of message ("INFO", "WARNING", "FATAL").
    error : str
        Message to be displayed.

    Returns
    -------
    None
    """
    warning_colour = Fore.GREEN
    if warning_type == "FATAL":
        warning_colour = Fore.RED
    elif warning_type == "WARNING":
        warning_colour = Fore.YELLOW

    print(f"{Fore.BLUE} {datetime.now().strftime('%c')}{Fore.RESET} [{warning_colour}{warning_type}{Fore.RESET}] {error}")

def csv_writer(output_file_path,output_file):
    """
    Write a list of rows to a CSV file.

    Parameters
    ----------
    output_file_path : str
        Path to the output CSV file.
    output_file : list
        List of rows (each row as a list) to be written.

    Returns
    -------
    None
    """
    with open(output_file_path, "w", newline='') as output:
        writer = csv.writer(output)
        writer.writerows(output_file)

def file_finder(folder, ext, search_term = None):
    """
    Find files in a given folder with specific extensions and an optional search term.

    Parameters
    ----------
    folder : str
        Path to the folder to search.
    ext : list
        List of file extensions to look for.
    search_term : str, optional
        Substring to filter filenames (default is None).

    Returns
    -------
    list or str
        List of matching file paths or a single file path if search_term is specified.
    """
    pathing = []
    for exten in ext:
        for filename in sorted(glob.glob(os.path.join(folder, exten))):
            if search_term is None:
                pathing.append(filename)
            else:
                find = os.path.basename(filename).find(search_term)
                if find != -1:
                    return filename
    return pathing

def variables_parser(var_file):
    """
    Parse a file of "key : value" entries and return a dictionary of key-value pairs.

    Parameters
    ----------
    var_file : str
        Path to the variable file.

    Returns
    -------
    dict
        Dictionary containing parsed key-value pairs.
    """
    variables = {}
    with open(var_file) as current:
        for line in current:
            line = line.rstrip("\n")
            if not line.strip():
                continue
            key,value = line.split(" : ", 1)
            variables[key] = value
    return variables

def variables_writer(var_file, variables):
    """
    Write a dictionary as "key : value" lines, readable by variables_parser.

    Parameters
    ----------
    var_file : str
        Path to the variable file.
    variables : dict
        Values to be written. None values are skipped.

    Returns
    -------
    None
    """
    with open(var_file, "w+") as current:
        for key in variables:
            if variables[key] is not None:
                current.write(f"{key} : {variables[key]}\n")

def adjust_spines(ax, spines,x,y):
    """
    Adjust the spines of a matplotlib axis for better visibility.

    Parameters
    ----------
    ax : matplotlib axis
        The axis to modify.
    spines : list
        List of spines to adjust (e.g., ["left", "bottom"]).
    x : tuple
        Bounds for the x-axis spine.
    y : tuple
        Bounds for the y-axis spine.

    Returns
    -------
    None
    """
    for loc, spine in ax.spines.items():
        if loc in spines:
            spine.set_position(('outward', 2.5))
            if (loc == 'left') or (loc == 'right'):
                spine.set_bounds(y)
            else:
                spine.set_bounds(x)
        else:
            spine.set_color('none')

def gb_parser(feature):
    """
    Parse a GenBank feature into a structured dictionary.

    Parameters
    ----------
    feature : BioPython SeqFeature
        A feature from a GenBank record.

    Returns
    -------
    dict
        Dictionary with the feature locus tag, coordinates, strand and
        description. "locus_tag" is None when the feature carries none.
    """
    output = {}
    output["start"] = int(feature.location.start)
    output["end"] = int(feature.location.end)
    output["strand"] = "+" if feature.location.strand == 1 else "-"

    try:
        output["locus_tag"] = feature.qualifiers['locus_tag'][0]
    except KeyError:
        output["locus_tag"] = None

    output["description"] = ""
    for key in ('product', 'note', 'gene'):
        if key in feature.qualifiers:
            output["description"] = feature.qualifiers[key][0]
            break

    return output

def gff_parser(file_line):
    """
    Parse a GFF3 line (split into fields) into a structured dictionary.

    Parameters
    ----------
    file_line : list
        A line from a GFF file split into fields.

    Returns
    -------
    dict or None
        Dictionary with parsed genomic feature details. An empty dictionary
        for headers and comments, None once the ##FASTA section starts.
    """
    output = {}

    if "##FASTA" in file_line[0]:
        return

    if (len(file_line) < 9) or ("#" in file_line[0][:3]): #ignores headers
        return output

    feature = {}
    for entry in file_line[8].strip().split(";"):
        entry = entry.split("=")
        if len(entry) == 2:
            feature[entry[0]] = entry[1]

    output["replicon"] = file_line[0]
    output["type"] = file_line[2]
    output["start"] = int(file_line[3]) - 1 #gff is 1-based and closed
    output["end"] = int(file_line[4])
    output["strand"] = file_line[6]
    output["locus_tag"] = feature.get("locus_tag", feature.get("ID"))
    output["description"] = feature.get("product", feature.get("Name", ""))

    return output

def gff_sequence_region(line):
    """
    Parse a "##sequence-region seqid start end" header.

    Returns
    -------
    tuple or None
        (seqid, length) or None when the line is not a sequence-region header.
    """
    if not line.startswith("##sequence-region"):
        return None
    fields = line.split()
    return fields[1], int(fields[3])
