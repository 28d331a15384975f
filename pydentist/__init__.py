"""
pyDENTIST: Python implementation of DENTIST for GWAS summary statistics QC

Detects variants whose association statistic is inconsistent with the value
imputed from correlated markers in a linkage-disequilibrium reference panel.
"""

__version__ = "0.1.0"
__author__ = "pyDENTIST Development Team"

from .qc.dentist import DENTIST_QC, run_dentist
from .matrix.imputation import DENTIST_Impute
from .matrix.partition import generate_unique_permutation, bisect_indices, partition_markers
from .utils.config import DentistConfig
from .utils.data_types import LDMatrix, DentistResults, DentistRound
from .utils.exceptions import (
    DentistError,
    ConfigurationError,
    RankDeficiencyError,
    DegenerateResidualError,
)
from .utils.stats import get_quantile, get_grouped_quantile, classify_by_significance

__all__ = [
    'DENTIST_QC',
    'run_dentist',
    'DENTIST_Impute',
    'generate_unique_permutation',
    'bisect_indices',
    'partition_markers',
    'DentistConfig',
    'LDMatrix',
    'DentistResults',
    'DentistRound',
    'DentistError',
    'ConfigurationError',
    'RankDeficiencyError',
    'DegenerateResidualError',
    'get_quantile',
    'get_grouped_quantile',
    'classify_by_significance',
]
