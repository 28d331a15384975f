"""DENTIST (Detecting Errors iN analyses of summary staTISTics)

Iterative LD-based quality control of GWAS summary statistics. Each round:

1. Randomly bisect the active markers into reference and target halves.
2. Impute every target marker from the reference half and standardise the
   residual (adjusted z-score).
3. Take the 99.5th percentile of |adjusted z| overall and within the
   significant / non-significant marker groups.
4. Re-impute using only the target markers under their group threshold.
5. Keep every active marker whose refreshed |adjusted z| stays under its
   group threshold; optionally rescue markers by genomic control.

Rounds run a fixed number of times; the active set only shrinks.
"""

from __future__ import annotations

import time
import warnings
from typing import Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy import stats

from ..matrix.imputation import DENTIST_Impute
from ..matrix.partition import partition_markers, round_seed
from ..utils.config import DentistConfig
from ..utils.data_types import DentistResults, DentistRound, LDMatrix
from ..utils.exceptions import ConfigurationError
from ..utils.stats import (
    classify_by_significance,
    genomic_inflation_factor,
    get_grouped_quantile,
    get_quantile,
)

MIN_ACTIVE_MARKERS = 4


def _prepare_inputs(
    ld: Union[LDMatrix, np.ndarray, pd.DataFrame],
    marker_size: int,
    z_scores: Union[np.ndarray, pd.Series, Sequence[float]],
) -> Tuple[LDMatrix, np.ndarray]:
    ld_matrix = ld if isinstance(ld, LDMatrix) else LDMatrix(ld)
    if ld_matrix.n_markers != marker_size:
        raise ConfigurationError(
            f"LD matrix has {ld_matrix.n_markers} markers but marker_size is {marker_size}"
        )

    z = np.asarray(z_scores, dtype=np.float64)
    if z.ndim != 1 or z.shape[0] != marker_size:
        raise ConfigurationError(
            f"Expected {marker_size} z-scores, got array of shape {z.shape}"
        )
    if not np.all(np.isfinite(z)):
        raise ConfigurationError("Z-scores must be finite")
    return ld_matrix, z


def _group_limits(threshold_group0: float, threshold_group1: float) -> np.ndarray:
    """Per-group cutoffs indexed by group label; a zero threshold disables filtering"""
    limits = np.array([threshold_group0, threshold_group1], dtype=np.float64)
    limits[limits == 0.0] = np.inf
    return limits


def run_dentist(
    ld: Union[LDMatrix, np.ndarray, pd.DataFrame],
    z_scores: Union[np.ndarray, pd.Series, Sequence[float]],
    config: DentistConfig,
    *,
    marker_size: Optional[int] = None,
    verbose: bool = True,
) -> DentistResults:
    """Run DENTIST QC with a prepared configuration.

    Args:
        ld: LD matrix (M × M)
        z_scores: Observed z-scores (length M)
        config: Run parameters
        marker_size: Expected marker count; defaults to the LD dimension
        verbose: Print progress information

    Returns:
        DentistResults with per-marker imputed z, R-squared, adjusted z,
        survival count and group label.
    """
    if marker_size is None:
        marker_size = int(ld.shape[0])
    config.validate(marker_size)
    ld_matrix, z = _prepare_inputs(ld, marker_size, z_scores)
    self_variance = ld_matrix.diagonal

    grouping = classify_by_significance(z, config.grouping_p_threshold)

    imputed_z = np.zeros(marker_size, dtype=np.float64)
    rsq = np.zeros(marker_size, dtype=np.float64)
    z_adjusted = np.zeros(marker_size, dtype=np.float64)
    iter_id = np.zeros(marker_size, dtype=np.int64)
    # Markers whose adjusted z has been computed at least once
    evaluated = np.zeros(marker_size, dtype=bool)

    critical_chisq = stats.chi2.isf(config.p_value_threshold, df=1)
    impute_kwargs = dict(
        n_sample=config.sample_size,
        prop_svd=config.prop_svd,
        n_workers=config.n_workers,
        eigen_tolerance=config.eigen_tolerance,
        self_variance=self_variance,
    )

    if verbose:
        print("=" * 60)
        print(f"DENTIST QC: {marker_size} markers, n={config.sample_size}, "
              f"propSVD={config.prop_svd}, {config.n_iter} iterations")
        print(f"Grouping threshold p < {config.grouping_p_threshold:g}: "
              f"{int(grouping.sum())} markers in significant group")
        if config.gc_control:
            print(f"Genomic control enabled (p threshold {config.p_value_threshold:g})")
    time0 = time.perf_counter()

    active = np.arange(marker_size, dtype=np.int64)
    history = []

    for t in range(config.n_iter):
        seed_t = round_seed(t, config.seed)
        reference, target = partition_markers(active, seed_t)

        rank = DENTIST_Impute(ld_matrix, reference, target, z,
                              imputed_z, rsq, z_adjusted, **impute_kwargs)
        evaluated[target] = True

        diff = np.abs(z_adjusted[target])
        grouping_tmp = grouping[target]
        threshold = get_quantile(diff, config.quantile)
        threshold1 = get_grouped_quantile(diff, grouping_tmp, config.quantile,
                                          label=1, min_count=config.min_group_size)
        threshold0 = get_grouped_quantile(diff, 1 - grouping_tmp, config.quantile,
                                          label=1, min_count=config.min_group_size)
        limits = _group_limits(threshold0, threshold1)

        target_qced = target[diff <= limits[grouping_tmp]]

        # Same reference set, cleaner targets
        DENTIST_Impute(ld_matrix, reference, target_qced, z,
                       imputed_z, rsq, z_adjusted, **impute_kwargs)

        keep = np.abs(z_adjusted[active]) <= limits[grouping[active]]
        retained = active[keep]
        iter_id[retained] += 1

        inflation = None
        n_rescued = 0
        if config.gc_control:
            scored = retained[evaluated[retained]]
            inflation = genomic_inflation_factor(z_adjusted[scored] ** 2)
            candidates = active[~keep]
            corrected = z_adjusted[candidates] ** 2 / inflation
            rescued = candidates[corrected < critical_chisq]
            n_rescued = int(rescued.size)
            retained = np.union1d(retained, rescued)

        history.append(DentistRound(
            round_index=t,
            seed=seed_t,
            n_active=int(active.size),
            n_reference=int(reference.size),
            n_target=int(target.size),
            n_target_qced=int(target_qced.size),
            rank=rank,
            threshold=threshold,
            threshold_group1=threshold1,
            threshold_group0=threshold0,
            n_retained=int(retained.size),
            inflation_factor=inflation,
            n_gc_rescued=n_rescued,
        ))

        if verbose:
            print(f"Iteration {t + 1}/{config.n_iter}: active={active.size} "
                  f"(ref={reference.size}, target={target.size}), K={rank}")
            print(f"  Thresholds: all={threshold:.4f}, group1={threshold1:.4f}, "
                  f"group0={threshold0:.4f}")
            line = f"  Retained {retained.size} markers ({active.size - retained.size} removed)"
            if inflation is not None:
                line += f", lambda={inflation:.4f}, {n_rescued} rescued by GC"
            print(line)

        active = retained
        if active.size < MIN_ACTIVE_MARKERS and t < config.n_iter - 1:
            warnings.warn(
                f"Only {active.size} markers remain after iteration {t + 1}; "
                "the next partition is unlikely to support imputation",
                RuntimeWarning,
                stacklevel=2,
            )

    if verbose:
        n_passed = int(np.sum(iter_id >= config.n_iter))
        print(f"DENTIST QC finished in {time.perf_counter() - time0:.2f}s: "
              f"{n_passed}/{marker_size} markers passed all iterations")

    return DentistResults(
        imputed_z=imputed_z,
        rsq=rsq,
        z_adjusted=z_adjusted,
        iter_id=iter_id,
        grouping=grouping,
        n_iter=config.n_iter,
        history=history,
    )


def DENTIST_QC(
    ld: Union[LDMatrix, np.ndarray, pd.DataFrame],
    marker_size: int,
    sample_size: int,
    z_scores: Union[np.ndarray, pd.Series, Sequence[float]],
    p_value_threshold: float = 5e-8,
    prop_svd: float = 0.4,
    gc_control: bool = False,
    n_iter: int = 10,
    grouping_p_threshold: float = 5e-8,
    n_workers: int = 1,
    seed: int = 42,
    *,
    config: Optional[DentistConfig] = None,
    verbose: bool = True,
) -> DentistResults:
    """Detect GWAS summary statistics inconsistent with reference-panel LD.

    Args:
        ld: LD matrix (M × M), symmetric
        marker_size: Total number of markers M
        sample_size: GWAS sample size
        z_scores: Observed z-scores (length M)
        p_value_threshold: P-value level of the genomic-control rescue
        prop_svd: Proportion of eigen-directions kept, in (0, 1]
        gc_control: Enable the genomic-control rescue step
        n_iter: Number of QC iterations
        grouping_p_threshold: P-value separating significant markers, which
            are thresholded separately
        n_workers: Number of threads for LD gathers and result scatters
        seed: Random seed of the first partition
        config: Prepared run parameters; when given, the parameter arguments
            above (sample_size included) are ignored
        verbose: Print progress information

    Returns:
        DentistResults; ``iter_id`` counts the iterations each marker passed.

    Raises:
        ConfigurationError: on malformed inputs
        RankDeficiencyError: if a reference set supports truncation rank <= 1
        DegenerateResidualError: if a target marker is imputed with R-squared >= 1
    """
    if config is None:
        config = DentistConfig(
            sample_size=sample_size,
            p_value_threshold=p_value_threshold,
            prop_svd=prop_svd,
            gc_control=gc_control,
            n_iter=n_iter,
            grouping_p_threshold=grouping_p_threshold,
            n_workers=n_workers,
            seed=seed,
        )
    return run_dentist(ld, z_scores, config, marker_size=marker_size, verbose=verbose)
