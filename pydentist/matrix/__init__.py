"""
LD matrix partitioning and truncated-eigenbasis imputation
"""

from .partition import generate_unique_permutation, bisect_indices, partition_markers
from .imputation import DENTIST_Impute

__all__ = ['generate_unique_permutation', 'bisect_indices', 'partition_markers', 'DENTIST_Impute']
