import numpy as np
import pytest
from scipy import stats

from pydentist.utils import stats as stats_utils


def test_get_quantile_uses_ceiling_rank() -> None:
    data = np.array([7.0, 1.0, 10.0, 3.0, 5.0, 2.0, 9.0, 4.0, 8.0, 6.0])

    assert stats_utils.get_quantile(data, 0.5) == 5.0
    assert stats_utils.get_quantile(data, 0.51) == 6.0
    assert stats_utils.get_quantile(data, 0.1) == 1.0


def test_get_quantile_at_one_is_maximum() -> None:
    data = np.random.default_rng(0).normal(size=137)

    assert stats_utils.get_quantile(data, 1.0) == data.max()


def test_get_quantile_995_on_200_values_drops_the_largest() -> None:
    data = np.arange(200, dtype=float)[::-1]

    assert stats_utils.get_quantile(data, 0.995) == 198.0


def test_get_quantile_is_non_decreasing_in_q() -> None:
    data = np.random.default_rng(1).exponential(size=73)
    qs = np.linspace(0.01, 1.0, 60)

    values = [stats_utils.get_quantile(data, q) for q in qs]

    assert all(a <= b for a, b in zip(values, values[1:]))


def test_get_quantile_rejects_empty_and_out_of_range() -> None:
    with pytest.raises(ValueError):
        stats_utils.get_quantile([], 0.5)
    with pytest.raises(ValueError):
        stats_utils.get_quantile([1.0, 2.0], 0.0)


def test_grouped_quantile_small_group_returns_zero() -> None:
    values = np.arange(100, dtype=float)
    grouping = np.zeros(100, dtype=np.uint8)
    grouping[:49] = 1

    assert stats_utils.get_grouped_quantile(values, grouping, 0.995) == 0.0


def test_grouped_quantile_filters_by_label() -> None:
    values = np.arange(120, dtype=float)
    grouping = (np.arange(120) % 2).astype(np.uint8)

    group1 = stats_utils.get_grouped_quantile(values, grouping, 0.5, label=1)
    group0 = stats_utils.get_grouped_quantile(values, 1 - grouping, 0.5, label=1)

    assert group1 == stats_utils.get_quantile(values[1::2], 0.5)
    assert group0 == stats_utils.get_quantile(values[0::2], 0.5)
    assert stats_utils.get_grouped_quantile(values, grouping, 0.5, label=0) == group0


def test_grouped_quantile_requires_matching_lengths() -> None:
    with pytest.raises(ValueError):
        stats_utils.get_grouped_quantile(np.ones(5), np.ones(4), 0.5)


def test_minus_log10_chisq_pvalue_matches_survival_function() -> None:
    stat = np.array([0.0, 1.0, stats.chi2.isf(0.05, 1), 30.0])

    expected = -np.log10(stats.chi2.sf(stat, 1))

    np.testing.assert_allclose(stats_utils.minus_log10_chisq_pvalue(stat), expected, rtol=1e-10)


def test_minus_log10_chisq_pvalue_finite_for_huge_statistics() -> None:
    value = stats_utils.minus_log10_chisq_pvalue(np.array([1e5]))

    assert np.isfinite(value).all()
    assert value[0] > 1000


def test_classify_by_significance_splits_at_threshold() -> None:
    # |z| = 5.45 is roughly p = 5e-8
    z = np.array([0.0, -2.0, 5.0, -6.0, 6.0, 50.0])

    grouping = stats_utils.classify_by_significance(z, 5e-8)

    np.testing.assert_array_equal(grouping, np.array([0, 0, 0, 1, 1, 1], dtype=np.uint8))


def test_genomic_inflation_factor_at_null_median_is_one() -> None:
    median_null = stats.chi2.ppf(0.5, 1)
    chisq = np.array([0.1, median_null, 5.0])

    assert stats_utils.genomic_inflation_factor(chisq) == pytest.approx(1.0)
    assert stats_utils.genomic_inflation_factor(chisq * 2.0) == pytest.approx(2.0)


def test_genomic_inflation_factor_degenerate_inputs() -> None:
    assert stats_utils.genomic_inflation_factor(np.array([])) == 1.0
    assert stats_utils.genomic_inflation_factor(np.zeros(5)) == 1.0
