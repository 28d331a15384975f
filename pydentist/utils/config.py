"""
Run parameters for the DENTIST quality-control loop
"""

from dataclasses import dataclass, asdict
from typing import Dict, Any

from .exceptions import ConfigurationError


@dataclass
class DentistConfig:
    """Parameters of a DENTIST run.

    Attributes:
        sample_size: GWAS sample size, caps the truncation rank
        p_value_threshold: Significance level used by the genomic-control rescue
        prop_svd: Proportion of eigen-directions kept in the truncated imputation
        gc_control: Enable the genomic-control rescue step
        n_iter: Number of QC rounds (no early exit)
        grouping_p_threshold: P-value splitting markers into the two threshold groups
        n_workers: Threads used for matrix gathers and result scatters
        seed: Seed of the first round's random partition
        quantile: Outlier quantile of the absolute adjusted statistic
        min_group_size: Smallest group for which a stratified threshold is computed
        eigen_tolerance: Eigenvalues below this count as numerical zeros
    """

    sample_size: int
    p_value_threshold: float = 5e-8
    prop_svd: float = 0.4
    gc_control: bool = False
    n_iter: int = 10
    grouping_p_threshold: float = 5e-8
    n_workers: int = 1
    seed: int = 42
    quantile: float = 0.995
    min_group_size: int = 50
    eigen_tolerance: float = 1e-4

    def validate(self, marker_size: int) -> None:
        """Reject malformed parameters before any computation starts"""
        if marker_size <= 0:
            raise ConfigurationError(f"Marker count must be positive, got {marker_size}")
        if self.sample_size <= 0:
            raise ConfigurationError(f"Sample size must be positive, got {self.sample_size}")
        if not (0.0 < self.prop_svd <= 1.0):
            raise ConfigurationError(f"prop_svd must be in (0, 1], got {self.prop_svd}")
        if self.n_iter <= 0:
            raise ConfigurationError(f"Number of iterations must be positive, got {self.n_iter}")
        if self.n_workers <= 0:
            raise ConfigurationError(f"Number of workers must be positive, got {self.n_workers}")
        for name in ("p_value_threshold", "grouping_p_threshold"):
            value = getattr(self, name)
            if not (0.0 < value < 1.0):
                raise ConfigurationError(f"{name} must be in (0, 1), got {value}")
        if not (0.0 < self.quantile <= 1.0):
            raise ConfigurationError(f"quantile must be in (0, 1], got {self.quantile}")
        if self.min_group_size < 0:
            raise ConfigurationError("min_group_size must be non-negative")
        if self.eigen_tolerance < 0:
            raise ConfigurationError("eigen_tolerance must be non-negative")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
