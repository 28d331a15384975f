"""
Core data structures for pyDENTIST
"""

from dataclasses import dataclass, field
from typing import Optional, Union, Tuple, Dict, Any, List, Sequence

import numpy as np
import pandas as pd

from .exceptions import ConfigurationError

SYMMETRY_TOLERANCE = 1e-8


class LDMatrix:
    """Linkage-disequilibrium matrix from a reference panel

    Must be a dense, square, symmetric matrix. Entry (i, j) is the correlation
    between markers i and j; the diagonal holds each marker's reference variance
    (normally 1). The matrix is read-only for the whole QC run.
    """

    def __init__(self, data: Union[np.ndarray, pd.DataFrame, "LDMatrix"]):
        if isinstance(data, LDMatrix):
            self._data = data._data
        elif isinstance(data, pd.DataFrame):
            self._data = data.to_numpy(dtype=np.float64)
        elif isinstance(data, np.ndarray):
            self._data = np.asarray(data, dtype=np.float64)
        else:
            raise ConfigurationError("LD matrix must be a numpy array or DataFrame")

        if self._data.ndim != 2:
            raise ConfigurationError("LD matrix must be 2D")
        if self._data.shape[0] != self._data.shape[1]:
            raise ConfigurationError(f"LD matrix must be square, got {self._data.shape}")
        if self._data.shape[0] == 0:
            raise ConfigurationError("LD matrix is empty")
        if not np.all(np.isfinite(self._data)):
            raise ConfigurationError("LD matrix contains non-finite values")
        if not np.allclose(self._data, self._data.T, atol=SYMMETRY_TOLERANCE):
            raise ConfigurationError("LD matrix must be symmetric")

        # Read-only view; the caller's array stays writable
        self._data = self._data.view()
        self._data.setflags(write=False)

    @property
    def shape(self) -> Tuple[int, int]:
        """Matrix shape"""
        return self._data.shape

    @property
    def n_markers(self) -> int:
        """Number of markers"""
        return self._data.shape[0]

    @property
    def diagonal(self) -> np.ndarray:
        """Per-marker reference variance"""
        return np.diag(self._data)

    def submatrix(self, rows: np.ndarray, cols: np.ndarray) -> np.ndarray:
        """Dense copy of the block at the given row and column marker indices"""
        return self._data[np.ix_(rows, cols)]

    def to_numpy(self) -> np.ndarray:
        """Read-only view of the underlying array"""
        return self._data


@dataclass
class DentistRound:
    """Trace of a single QC round."""

    round_index: int
    seed: int
    n_active: int
    n_reference: int
    n_target: int
    n_target_qced: int
    rank: int
    threshold: float
    threshold_group1: float
    threshold_group0: float
    n_retained: int
    inflation_factor: Optional[float] = None
    n_gc_rescued: int = 0

    def to_row(self) -> Dict[str, Any]:
        return {
            "Round": self.round_index,
            "Seed": self.seed,
            "Active": self.n_active,
            "Reference": self.n_reference,
            "Target": self.n_target,
            "TargetQCed": self.n_target_qced,
            "Rank": self.rank,
            "Threshold": self.threshold,
            "Threshold1": self.threshold_group1,
            "Threshold0": self.threshold_group0,
            "Retained": self.n_retained,
            "Lambda": self.inflation_factor,
            "GCRescued": self.n_gc_rescued,
        }


@dataclass
class DentistResults:
    """Per-marker output of a DENTIST run

    All vectors are indexed by original marker id. Markers never selected into
    a target set keep the initial zero defaults.
    """

    imputed_z: np.ndarray
    rsq: np.ndarray
    z_adjusted: np.ndarray
    iter_id: np.ndarray
    grouping: np.ndarray
    n_iter: int
    history: List[DentistRound] = field(default_factory=list)

    def __post_init__(self) -> None:
        lengths = {len(self.imputed_z), len(self.rsq), len(self.z_adjusted),
                   len(self.iter_id), len(self.grouping)}
        if len(lengths) != 1:
            raise ValueError("All result arrays must have same length")

    @property
    def n_markers(self) -> int:
        """Number of markers"""
        return len(self.imputed_z)

    def passed_mask(self) -> np.ndarray:
        """Markers that survived every round"""
        return self.iter_id >= self.n_iter

    def flagged_indices(self) -> np.ndarray:
        """Marker ids removed by QC at some round"""
        return np.flatnonzero(~self.passed_mask())

    def to_dict(self) -> Dict[str, np.ndarray]:
        return {
            "imputedZ": self.imputed_z,
            "rsq": self.rsq,
            "zScore_e": self.z_adjusted,
            "iterID": self.iter_id,
            "groupingGWAS": self.grouping,
        }

    def to_dataframe(self, snp_ids: Optional[Sequence[str]] = None) -> pd.DataFrame:
        """Convert to pandas DataFrame, optionally labelled with SNP ids"""
        df = pd.DataFrame(self.to_dict())
        if snp_ids is not None:
            if len(snp_ids) != self.n_markers:
                raise ValueError(
                    f"Got {len(snp_ids)} SNP ids for {self.n_markers} markers"
                )
            df.insert(0, "SNP", list(snp_ids))
        return df

    def history_dataframe(self) -> pd.DataFrame:
        """Per-round trace as a DataFrame"""
        return pd.DataFrame([entry.to_row() for entry in self.history])

    def to_numpy(self) -> np.ndarray:
        """Convert to numpy array [imputedZ, rsq, zScore_e, iterID, groupingGWAS]"""
        return np.column_stack([
            self.imputed_z, self.rsq, self.z_adjusted,
            self.iter_id.astype(np.float64), self.grouping.astype(np.float64),
        ])
