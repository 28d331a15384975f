"""
Iterative summary-statistics quality control
"""

from .dentist import DENTIST_QC

__all__ = ['DENTIST_QC']
