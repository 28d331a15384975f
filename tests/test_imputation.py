import numpy as np
import pytest

from pydentist.matrix.imputation import (
    DENTIST_Impute,
    gather_submatrix,
    truncated_eigenbasis,
)
from pydentist.utils.data_types import LDMatrix
from pydentist.utils.exceptions import DegenerateResidualError, RankDeficiencyError


def _ar1_ld(n_markers: int, rho: float) -> np.ndarray:
    idx = np.arange(n_markers)
    return rho ** np.abs(idx[:, None] - idx[None, :])


def _empty_state(n_markers: int):
    return (np.zeros(n_markers), np.zeros(n_markers), np.zeros(n_markers))


def test_identity_ld_imputes_nothing() -> None:
    ld = np.eye(10)
    z = np.random.default_rng(0).normal(size=10)
    imputed, rsq, z_adj = _empty_state(10)
    reference = np.arange(5)
    target = np.arange(5, 10)

    K = DENTIST_Impute(ld, reference, target, z, imputed, rsq, z_adj,
                       n_sample=1000, prop_svd=0.5)

    assert K == 2
    np.testing.assert_allclose(imputed, 0.0)
    np.testing.assert_allclose(rsq, 0.0)
    np.testing.assert_allclose(z_adj[target], z[target])
    # reference markers are never written
    np.testing.assert_array_equal(z_adj[reference], 0.0)


def test_full_rank_imputation_matches_conditional_expectation() -> None:
    ld = _ar1_ld(12, 0.5)
    z = np.random.default_rng(1).normal(size=12)
    imputed, rsq, z_adj = _empty_state(12)
    reference = np.array([0, 2, 3, 5, 7, 8, 10])
    target = np.array([1, 4, 6, 9, 11])

    K = DENTIST_Impute(LDMatrix(ld), reference, target, z, imputed, rsq, z_adj,
                       n_sample=500, prop_svd=1.0)

    C = ld[np.ix_(target, reference)]
    V = ld[np.ix_(reference, reference)]
    expected_imputed = C @ np.linalg.solve(V, z[reference])
    expected_rsq = np.einsum("ij,ji->i", C, np.linalg.solve(V, C.T))
    expected_adj = (z[target] - expected_imputed) / np.sqrt(1.0 - expected_rsq)

    assert K == reference.size
    np.testing.assert_allclose(imputed[target], expected_imputed, atol=1e-10)
    np.testing.assert_allclose(rsq[target], expected_rsq, atol=1e-10)
    np.testing.assert_allclose(z_adj[target], expected_adj, atol=1e-10)
    assert np.all((rsq[target] >= 0.0) & (rsq[target] < 1.0))


def test_truncation_keeps_leading_eigenvectors() -> None:
    V = _ar1_ld(8, 0.7)

    U, inverse_eigenvals, K = truncated_eigenbasis(V, 3)

    eigenvals = np.sort(np.linalg.eigvalsh(V))[::-1]
    assert K == 3
    assert U.shape == (8, 3)
    np.testing.assert_allclose(1.0 / inverse_eigenvals, eigenvals[:3])
    np.testing.assert_allclose(U.T @ U, np.eye(3), atol=1e-10)


def test_truncated_rsq_never_exceeds_full_rank_rsq() -> None:
    ld = _ar1_ld(30, 0.8)
    z = np.random.default_rng(2).normal(size=30)
    reference = np.arange(0, 30, 2)
    target = np.arange(1, 30, 2)

    _, rsq_full, _ = state_full = _empty_state(30)
    DENTIST_Impute(ld, reference, target, z, *state_full, n_sample=100, prop_svd=1.0)
    _, rsq_trunc, _ = state_trunc = _empty_state(30)
    K = DENTIST_Impute(ld, reference, target, z, *state_trunc, n_sample=100, prop_svd=0.3)

    assert K == 4
    assert np.all(rsq_trunc[target] <= rsq_full[target] + 1e-12)


def test_rank_capped_by_sample_size() -> None:
    ld = _ar1_ld(20, 0.3)
    z = np.zeros(20)
    state = _empty_state(20)

    K = DENTIST_Impute(ld, np.arange(10), np.arange(10, 20), z, *state,
                       n_sample=6, prop_svd=0.5)

    assert K == 3


def test_all_ones_reference_block_is_rank_deficient() -> None:
    ld = np.ones((4, 4))
    z = np.full(4, 2.0)
    state = _empty_state(4)

    with pytest.raises(RankDeficiencyError) as excinfo:
        DENTIST_Impute(ld, np.array([0, 1]), np.array([2, 3]), z, *state,
                       n_sample=100, prop_svd=1.0)

    assert excinfo.value.rank == 1
    assert excinfo.value.n_reference == 2


def test_requested_rank_of_one_is_rejected() -> None:
    ld = np.eye(6)
    state = _empty_state(6)

    with pytest.raises(RankDeficiencyError):
        DENTIST_Impute(ld, np.arange(3), np.arange(3, 6), np.zeros(6), *state,
                       n_sample=2, prop_svd=0.5)


def test_single_reference_marker_is_rank_deficient() -> None:
    state = _empty_state(3)

    with pytest.raises(RankDeficiencyError):
        DENTIST_Impute(np.eye(3), np.array([0]), np.array([1, 2]), np.zeros(3), *state,
                       n_sample=10, prop_svd=1.0)


def test_rsq_at_or_above_one_raises_and_leaves_state_untouched() -> None:
    ld = np.array([
        [1.0, 0.0, 0.9],
        [0.0, 1.0, 0.6],
        [0.9, 0.6, 1.0],
    ])
    z = np.array([1.0, 2.0, 3.0])
    imputed, rsq, z_adj = _empty_state(3)

    with pytest.raises(DegenerateResidualError) as excinfo:
        DENTIST_Impute(ld, np.array([0, 1]), np.array([2]), z, imputed, rsq, z_adj,
                       n_sample=100, prop_svd=1.0)

    assert excinfo.value.marker_index == 2
    assert excinfo.value.rsq == pytest.approx(1.17)
    np.testing.assert_array_equal(imputed, 0.0)
    np.testing.assert_array_equal(rsq, 0.0)
    np.testing.assert_array_equal(z_adj, 0.0)


def test_empty_target_is_a_no_op() -> None:
    state = _empty_state(5)

    K = DENTIST_Impute(np.eye(5), np.arange(5), np.array([], dtype=int), np.ones(5), *state,
                       n_sample=10, prop_svd=1.0)

    assert K == 0
    for arr in state:
        np.testing.assert_array_equal(arr, 0.0)


def test_gather_submatrix_matches_fancy_indexing() -> None:
    ld = _ar1_ld(25, 0.4)
    rows = np.array([3, 1, 24, 7, 7, 0, 13])
    cols = np.array([5, 2, 19, 11])

    for n_workers in (1, 3, 16):
        block = gather_submatrix(ld, rows, cols, n_workers=n_workers)
        np.testing.assert_array_equal(block, ld[np.ix_(rows, cols)])


def test_worker_count_does_not_change_results() -> None:
    ld = _ar1_ld(60, 0.6)
    z = np.random.default_rng(3).normal(size=60)
    reference = np.arange(0, 60, 2)
    target = np.arange(1, 60, 2)

    serial = _empty_state(60)
    DENTIST_Impute(ld, reference, target, z, *serial, n_sample=200, prop_svd=0.5, n_workers=1)
    threaded = _empty_state(60)
    DENTIST_Impute(ld, reference, target, z, *threaded, n_sample=200, prop_svd=0.5, n_workers=4)

    for a, b in zip(serial, threaded):
        np.testing.assert_allclose(a, b, rtol=1e-12, atol=1e-12)


def test_self_variance_scales_residual() -> None:
    ld = np.eye(6) * 4.0
    z = np.arange(6, dtype=float)
    imputed, rsq, z_adj = _empty_state(6)

    DENTIST_Impute(ld, np.arange(3), np.arange(3, 6), z, imputed, rsq, z_adj,
                   n_sample=10, prop_svd=1.0)

    np.testing.assert_allclose(z_adj[3:], z[3:] / 2.0)
