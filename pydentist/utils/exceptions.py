"""
Error types raised by the DENTIST quality-control routines
"""

from typing import Optional


class DentistError(Exception):
    """Base class for all DENTIST failures"""


class ConfigurationError(DentistError, ValueError):
    """Malformed inputs or run parameters, detected before any computation"""


class RankDeficiencyError(DentistError, RuntimeError):
    """Reference LD block carries too little independent information

    Raised when the truncation rank, capped at the effective rank of the
    reference LD submatrix, is <= 1.
    """

    def __init__(self, rank: int, n_reference: int, message: Optional[str] = None):
        self.rank = rank
        self.n_reference = n_reference
        if message is None:
            message = (f"Rank of eigen matrix <= 1 (rank={rank}, "
                       f"{n_reference} reference markers)")
        super().__init__(message)


class DegenerateResidualError(DentistError, RuntimeError):
    """Imputation R-squared >= 1, leaving no residual variance to divide by"""

    def __init__(self, marker_index: int, rsq: float):
        self.marker_index = marker_index
        self.rsq = rsq
        super().__init__(f"Dividing zero: Rsq = {rsq} for marker {marker_index}")
