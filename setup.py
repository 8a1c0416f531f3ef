from setuptools import setup, find_packages

from os import path
this_directory = path.abspath(path.dirname(__file__))
with open(path.join(this_directory, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

VERSION = '1.0'
DESCRIPTION = 'TnEssentials'
LONG_DESCRIPTION = 'Python3 module for calling gene essentiality from barcoded transposon insertion pools. Needs a gene feature table (csv/tsv, GenBank or GFF3) and an insertion pool table.'

setup(
       # the name must match the folder name
        name="tnessentials",
        version=VERSION,
        description=DESCRIPTION,
        long_description=long_description,
        long_description_content_type='text/markdown',
        packages=find_packages(exclude=["tests", "tests.*"]),
        python_requires=">=3.8",
        install_requires=["numpy",
                           "matplotlib >= 3.8",
                           "pandas >= 2.2.0",
                           "numba",
                           "biopython >= 1.83",
                           "scipy >= 1.12.0",
                           "seaborn >= 0.13.2",
                           "statsmodels >= 0.14.1",
                           "colorama"],
        extras_require={"test": ["pytest"]},

        entry_points={
        'console_scripts': [
            'tnessentials=tnessentials.__main__:main',
            ],
        },

        keywords=['tn-seq', 'essentiality', 'rb-seq'],
        classifiers= [
            "Development Status :: 4 - Beta",
            "Intended Audience :: Science/Research",
            "Programming Language :: Python :: 3",
            "Operating System :: OS Independent",
        ],
)
