"""
Truncated-eigenbasis imputation of summary statistics from LD.

Algorithm, for reference markers R and target markers T:
- K = floor(min(|R|, n) * prop_svd), capped at the effective rank of V.
- Gather C = LD[T, R] and V = LD[R, R].
- Eigendecompose V (ascending eigenvalues); eigenvalues below the tolerance
  count as zero. Keep the K leading eigenvectors U and weights W = 1/lambda.
- beta = C U W
      imputed = beta (U^T z_R)
      rsq     = diag(beta U^T C^T)
      z_e     = (z_T - imputed) / sqrt(LD[T, T] - rsq)

The gathers and the final scatter run over a thread pool in disjoint row
blocks; the eigendecomposition and products are single library calls.
"""

from typing import Callable, List, Optional, Tuple, Union
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from ..utils.data_types import LDMatrix
from ..utils.exceptions import RankDeficiencyError, DegenerateResidualError

EIGEN_ZERO_TOLERANCE = 1e-4


def _row_blocks(n_rows: int, n_workers: int) -> List[Tuple[int, int]]:
    """Contiguous [start, end) blocks, one per worker"""
    n_blocks = max(1, min(n_workers, n_rows))
    bounds = np.linspace(0, n_rows, n_blocks + 1).astype(int)
    return [(int(bounds[i]), int(bounds[i + 1])) for i in range(n_blocks)
            if bounds[i + 1] > bounds[i]]


def _run_row_blocks(func: Callable[[int, int], None], n_rows: int, n_workers: int) -> None:
    """Apply ``func(start, end)`` over disjoint row blocks, joining at the end"""
    if n_workers <= 1 or n_rows < 2:
        func(0, n_rows)
        return

    with ThreadPoolExecutor(max_workers=n_workers) as executor:
        futures = [executor.submit(func, start, end)
                   for start, end in _row_blocks(n_rows, n_workers)]
        # result() re-raises worker exceptions
        for future in futures:
            future.result()


def gather_submatrix(ld: Union[LDMatrix, np.ndarray],
                     rows: np.ndarray,
                     cols: np.ndarray,
                     n_workers: int = 1) -> np.ndarray:
    """Dense block LD[rows, cols], filled row-block-wise in parallel"""
    ld_array = ld.to_numpy() if isinstance(ld, LDMatrix) else np.asarray(ld)
    rows = np.asarray(rows, dtype=np.int64)
    cols = np.asarray(cols, dtype=np.int64)
    out = np.empty((rows.size, cols.size), dtype=np.float64)

    def _fill(start: int, end: int) -> None:
        out[start:end] = ld_array[np.ix_(rows[start:end], cols)]

    _run_row_blocks(_fill, rows.size, n_workers)
    return out


def truncated_eigenbasis(V: np.ndarray,
                         K: int,
                         tolerance: float = EIGEN_ZERO_TOLERANCE) -> Tuple[np.ndarray, np.ndarray, int]:
    """Leading eigenvectors of a symmetric block and their inverse eigenvalues

    Args:
        V: Symmetric reference LD block
        K: Requested truncation rank
        tolerance: Eigenvalues below this are numerical zeros

    Returns:
        Tuple of (U, inverse_eigenvalues, K) with U of shape (n, K), columns
        ordered by decreasing eigenvalue

    Raises:
        RankDeficiencyError: if the capped rank is <= 1
    """
    n_reference = V.shape[0]
    if n_reference < 2:
        raise RankDeficiencyError(n_reference, n_reference)

    try:
        eigenvals, eigenvecs = np.linalg.eigh(V)
    except np.linalg.LinAlgError as e:
        raise RankDeficiencyError(
            0, n_reference, f"Failed to compute eigendecomposition: {e}"
        ) from e

    n_rank = n_reference - int(np.sum(eigenvals < tolerance))
    K = min(int(K), n_rank)
    if K <= 1:
        raise RankDeficiencyError(K, n_reference)

    # eigh returns ascending eigenvalues; take the tail, largest first
    U = eigenvecs[:, -K:][:, ::-1]
    inverse_eigenvals = 1.0 / eigenvals[-K:][::-1]
    return U, inverse_eigenvals, K


def DENTIST_Impute(ld: Union[LDMatrix, np.ndarray],
                   reference: np.ndarray,
                   target: np.ndarray,
                   z_scores: np.ndarray,
                   imputed_z: np.ndarray,
                   rsq: np.ndarray,
                   z_adjusted: np.ndarray,
                   n_sample: int,
                   prop_svd: float,
                   n_workers: int = 1,
                   eigen_tolerance: float = EIGEN_ZERO_TOLERANCE,
                   self_variance: Optional[np.ndarray] = None) -> int:
    """Impute target-marker statistics from the reference markers

    Updates ``imputed_z``, ``rsq`` and ``z_adjusted`` in place at the target
    marker ids; all other entries are left untouched. Nothing is written if
    the call fails.

    Args:
        ld: LD matrix (M x M)
        reference: Marker ids used as predictors
        target: Marker ids to impute
        z_scores: Observed z-scores (length M)
        imputed_z: Output imputed z-scores (length M)
        rsq: Output imputation R-squared (length M)
        z_adjusted: Output standardised residuals (length M)
        n_sample: GWAS sample size
        prop_svd: Proportion of eigen-directions kept
        n_workers: Threads for gathers and scatter
        eigen_tolerance: Eigenvalues below this count as zeros
        self_variance: LD diagonal, recomputed from ``ld`` when omitted

    Returns:
        Truncation rank K used, or 0 when ``target`` is empty

    Raises:
        RankDeficiencyError: if the reference block supports a rank <= 1
        DegenerateResidualError: if some target marker has R-squared >= 1
    """
    reference = np.asarray(reference, dtype=np.int64)
    target = np.asarray(target, dtype=np.int64)
    if reference.size < 2:
        raise RankDeficiencyError(reference.size, reference.size)
    if target.size == 0:
        return 0

    K = int(min(reference.size, n_sample) * prop_svd)

    C = gather_submatrix(ld, target, reference, n_workers)
    V = gather_submatrix(ld, reference, reference, n_workers)
    U, inverse_eigenvals, K = truncated_eigenbasis(V, K, eigen_tolerance)

    CU = C @ U
    beta = CU * inverse_eigenvals[np.newaxis, :]
    target_imputed = beta @ (U.T @ z_scores[reference])
    # diag(beta U^T C^T) without forming the |T| x |T| product
    target_rsq = np.einsum("ij,ij->i", beta, CU)

    if self_variance is None:
        ld_array = ld.to_numpy() if isinstance(ld, LDMatrix) else np.asarray(ld)
        target_var = ld_array[target, target]
    else:
        target_var = self_variance[target]
    residual_var = target_var - target_rsq

    degenerate = (target_rsq >= 1.0) | (residual_var <= 0.0)
    if degenerate.any():
        first = int(np.argmax(degenerate))
        raise DegenerateResidualError(int(target[first]), float(target_rsq[first]))

    target_adjusted = (z_scores[target] - target_imputed) / np.sqrt(residual_var)

    def _scatter(start: int, end: int) -> None:
        ids = target[start:end]
        imputed_z[ids] = target_imputed[start:end]
        rsq[ids] = target_rsq[start:end]
        z_adjusted[ids] = target_adjusted[start:end]

    _run_row_blocks(_scatter, target.size, n_workers)
    return K
