"""
Statistical utilities for summary-statistics QC
"""

import math
import numpy as np
from typing import Sequence, Union
from scipy import stats

ArrayLike = Union[np.ndarray, Sequence[float]]

def get_quantile(values: ArrayLike, which_quantile: float) -> float:
    """Empirical quantile by rank, without interpolation

    Sorts ascending and returns the element at 0-indexed rank
    ``ceil(size * q) - 1``, so ``q=1`` gives the maximum.

    Args:
        values: Sequence of values
        which_quantile: Quantile in (0, 1]

    Returns:
        The selected order statistic
    """
    values = np.asarray(values, dtype=np.float64)
    if values.size == 0:
        raise ValueError("Cannot take a quantile of an empty sequence")
    if not (0.0 < which_quantile <= 1.0):
        raise ValueError(f"Quantile must be in (0, 1], got {which_quantile}")

    pos = max(int(math.ceil(values.size * which_quantile)) - 1, 0)
    # partition is enough to place the order statistic
    return float(np.partition(values, pos)[pos])

def get_grouped_quantile(values: ArrayLike,
                         grouping: ArrayLike,
                         which_quantile: float,
                         label: int = 1,
                         min_count: int = 50) -> float:
    """Empirical quantile restricted to markers carrying a group label

    Args:
        values: Sequence of values
        grouping: Group label per value (same length as values)
        which_quantile: Quantile in (0, 1]
        label: Group label to keep
        min_count: Minimum group size for a meaningful quantile

    Returns:
        The quantile of the group, or 0.0 when fewer than ``min_count``
        values carry the label
    """
    values = np.asarray(values, dtype=np.float64)
    grouping = np.asarray(grouping)
    if values.shape != grouping.shape:
        raise ValueError("Values and grouping must have same length")

    filtered = values[grouping == label]
    if filtered.size < min_count or filtered.size == 0:
        return 0.0
    return get_quantile(filtered, which_quantile)

def minus_log10_chisq_pvalue(stat: ArrayLike, df: int = 1) -> np.ndarray:
    """-log10 of the chi-squared survival p-value

    Computed on the log scale so very large statistics give finite values
    instead of -log10(0).
    """
    stat = np.asarray(stat, dtype=np.float64)
    if df == 1:
        # P(chi2_1 > s) = 2 * P(N > sqrt(s)); norm.logsf stays accurate in the tail
        log_p = np.log(2.0) + stats.norm.logsf(np.sqrt(np.maximum(stat, 0.0)))
    else:
        log_p = stats.chi2.logsf(stat, df)
    return -log_p / np.log(10.0)

def classify_by_significance(z_scores: ArrayLike, pvalue_threshold: float) -> np.ndarray:
    """Split markers into significant (1) and non-significant (0) groups

    A marker is in group 1 when its 1-df chi-squared p-value (z^2) is below
    ``pvalue_threshold``.

    Args:
        z_scores: Observed association z-scores
        pvalue_threshold: Grouping p-value threshold in (0, 1)

    Returns:
        uint8 array of group labels
    """
    z_scores = np.asarray(z_scores, dtype=np.float64)
    log_p = minus_log10_chisq_pvalue(z_scores * z_scores)
    return (log_p > -np.log10(pvalue_threshold)).astype(np.uint8)

def genomic_inflation_factor(chisq: ArrayLike) -> float:
    """Calculate genomic inflation factor (lambda) from chi-squared statistics

    Args:
        chisq: 1-df chi-squared statistics

    Returns:
        Median statistic over its null expectation; 1.0 when undefined
    """
    chisq = np.asarray(chisq, dtype=np.float64)
    chisq = chisq[np.isfinite(chisq)]
    if len(chisq) == 0:
        return 1.0

    median_chi2 = np.median(chisq)
    if median_chi2 <= 0:
        return 1.0
    expected_median = stats.chi2.ppf(0.5, df=1)

    return float(median_chi2 / expected_median)
