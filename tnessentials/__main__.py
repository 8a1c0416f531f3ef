import os
import sys
import argparse
from colorama import Fore
from tnessentials import Essential_Finder,__version__
from tnessentials.extras.exceptions import TnEssentialsError,InputTableError,ConfigurationError
from tnessentials.extras.helper_functions import cpu,colourful_errors,file_finder,variables_writer

''' Tnessentials calls gene essentiality from a transposon insertion pool.
    It maps barcoded insertions onto the reference genes, compares each gene's
    insertion density with its neighbourhood, fits the genome-wide insertion
    index distribution and labels every gene as essential, ambiguous or
    non-essential.
    '''

def input_parser(argv=None):

    parser = argparse.ArgumentParser(prog="tnessentials")
    parser.add_argument("-s",help="Strain name. Used to name the outputs and to find the input files in -d")
    parser.add_argument("-d",help="The full path to the FOLDER holding the inputs (used when -f/-i are not given)")
    parser.add_argument("-f",help="Gene feature file: csv/tsv table (locus_tag, replicon, start, end, strand, description), GenBank or GFF3")
    parser.add_argument("-i",help="Insertion pool table (barcode, replicon, position, read_count, secondary_position_count)")
    parser.add_argument("-o",help="Output folder. Defaults to ./STRAIN")
    parser.add_argument("--w",nargs='?',const=20000,default=20000,help="Local window width in bp for the insertion density baseline")
    parser.add_argument("--rf",nargs='?',const=1,default=1,help="Read floor: barcodes with this many reads or fewer are noise")
    parser.add_argument("--c5",nargs='?',const=0.1,default=0.1,help="Start of the central gene region (relative position, 0-1)")
    parser.add_argument("--c3",nargs='?',const=0.9,default=0.9,help="End of the central gene region (relative position, 0-1)")
    parser.add_argument("--lr",nargs='?',const=5,default=5,help="Likelihood ratio factor delimiting the ambiguous band")
    parser.add_argument("--fc",nargs='?',const=3,default=3,help="Insertion index cutoff for the mixture fit")
    parser.add_argument("--cap",nargs='?',const=100,default=100,help="Insertion indices above this value are left out of threshold fitting")
    parser.add_argument("--po",nargs='?',const=0.1,default=0.1,help="Insertion probability at or above which an essential call becomes ambiguous")
    parser.add_argument("--mp",nargs='?',const=10,default=10,help="Minimum number of genes per fitted population")
    parser.add_argument("--ri",nargs='?',const=20,default=20,help="Maximum refinements of the population split")
    parser.add_argument("--fit",nargs='?',const="mle",default="mle",help="Fitting strategy (mle or moments)")
    parser.add_argument("--np",nargs='?',const=True,help="Do not draw the diagnostic plots")
    parser.add_argument("--cpu",nargs='?',const=None,help="Define the number of processes for insertion mapping (must be an integer)")

    args = parser.parse_args(argv)

    print("\n")
    print(f"{Fore.RED} Welcome to{Fore.RESET} tnessentials")
    print(f"{Fore.RED}            Version: {Fore.RESET}{__version__}")
    print("\n")

    if args.s is None or ((args.d is None) and (args.f is None or args.i is None)):
        parser.print_usage()
        colourful_errors("FATAL",
                 "A strain name and either an input folder or both input files are needed.")
        raise SystemExit(2)

    variables = {}
    variables["strain"] = args.s
    variables["feature_file"] = args.f
    variables["insertion_file"] = args.i

    if args.d is not None:
        if variables["feature_file"] is None:
            found = file_finder(args.d, ['*.gb', '*.gbk', '*.gff', '*.gff3', '*.csv', '*.tsv'], f"{args.s}_features")
            if found == []:
                found = file_finder(args.d, ['*.gb', '*.gbk', '*.gff', '*.gff3'], args.s)
            variables["feature_file"] = found if found != [] else None
        if variables["insertion_file"] is None:
            found = file_finder(args.d, ['*.csv', '*.tsv'], f"{args.s}_insertions")
            variables["insertion_file"] = found if found != [] else None

    if variables["feature_file"] is None:
        raise InputTableError(f"No feature file found for {args.s}")
    if variables["insertion_file"] is None:
        raise InputTableError(f"No insertion pool table found for {args.s}")

    variables["directory"] = args.o if args.o is not None else os.path.join(os.getcwd(), args.s)
    numeric = {"window_bp": (args.w, int, "--w"),
               "read_floor": (args.rf, int, "--rf"),
               "central_start": (args.c5, float, "--c5"),
               "central_end": (args.c3, float, "--c3"),
               "likelihood_ratio": (args.lr, float, "--lr"),
               "fit_cutoff": (args.fc, float, "--fc"),
               "index_cap": (args.cap, float, "--cap"),
               "probability_override": (args.po, float, "--po"),
               "min_population": (args.mp, int, "--mp"),
               "refine_iterations": (args.ri, int, "--ri"),
               "cpus": (args.cpu if args.cpu is not None else cpu(), int, "--cpu")}
    for key, (value, cast, flag) in numeric.items():
        try:
            variables[key] = cast(value)
        except ValueError as e:
            raise ConfigurationError(f"{flag} expects a number, got {value!r}") from e
    variables["strategy"] = args.fit
    variables["plots"] = args.np is None
    return variables

def variables_initializer(argv=None):

    variables = input_parser(argv)
    if not os.path.isdir(variables["directory"]):
        os.makedirs(variables["directory"])
    variables["all_variables_path"] = os.path.join(variables['directory'],"cmd_input.txt")

    print(f"{Fore.YELLOW} -- Parameters -- {Fore.RESET}\n")
    for key in variables:
        if "all_variables_path" not in key:
            print(f"{Fore.GREEN} {key}:{Fore.RESET} {variables[key]}")
    print(f"\n{Fore.YELLOW} ---- {Fore.RESET}\n")

    variables_writer(variables["all_variables_path"], variables)
    return variables

def main(argv=None):

    try:
        variables = variables_initializer(argv)
        colourful_errors("INFO","Infering essential genes.")
        Essential_Finder.main(variables["all_variables_path"])
    except TnEssentialsError as e:
        colourful_errors("FATAL", f"{type(e).__name__}: {e}")
        sys.exit(1)

    colourful_errors("INFO","Analysis Finished.")

if __name__ == "__main__":
    main()
