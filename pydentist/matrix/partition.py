"""
Random reference/target bisection of the active marker set
"""

from typing import Tuple

import numpy as np

from ..utils.exceptions import ConfigurationError

# Draws are integers in [0, DRAW_SPACE); mirrors a signed 32-bit range
DRAW_SPACE = 2**31 - 1
MAX_DRAW_FRACTION = 0.5
ROUND_SEED_STEP = 20000
# Seeds are taken modulo 2**32, so negative seeds are accepted
SEED_MASK = 0xFFFFFFFF


def round_seed(round_index: int, seed: int) -> int:
    """Seed of the partition used at the start of ``round_index``"""
    if round_index == 0:
        return seed
    return ROUND_SEED_STEP * round_index


def generate_unique_permutation(n: int, seed: int) -> np.ndarray:
    """Permutation of {0, ..., n-1} from collision-free uniform draws

    Draws ``n`` integers, redrawing every value that collides with an earlier
    one until all are distinct, then orders positions by drawn value.

    Args:
        n: Number of elements
        seed: Seed for the uniform generator; any integer, folded to 32 bits

    Returns:
        int64 array holding a permutation of range(n)
    """
    if n < 0:
        raise ConfigurationError(f"Permutation size must be non-negative, got {n}")
    if n > DRAW_SPACE * MAX_DRAW_FRACTION:
        raise ConfigurationError(
            f"Cannot draw {n} unique values from a space of {DRAW_SPACE}"
        )

    rng = np.random.default_rng(int(seed) & SEED_MASK)
    values = rng.integers(0, DRAW_SPACE, size=n, dtype=np.int64)

    while True:
        _, first = np.unique(values, return_index=True)
        if first.size == n:
            break
        duplicates = np.ones(n, dtype=bool)
        duplicates[first] = False
        values[duplicates] = rng.integers(0, DRAW_SPACE, size=int(duplicates.sum()),
                                          dtype=np.int64)

    return np.argsort(values, kind="stable")


def bisect_indices(permutation: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Split positions {0, ..., n-1} in two by permutation value

    Positions whose value lies above the rank midpoint ``(n - 1) / 2`` form the
    reference half; the rest form the target half. Sizes differ by at most one.

    Returns:
        Tuple of (reference_positions, target_positions), each sorted ascending
    """
    permutation = np.asarray(permutation)
    midpoint = (permutation.size - 1) / 2.0
    above = permutation > midpoint
    return np.flatnonzero(above), np.flatnonzero(~above)


def partition_markers(active: np.ndarray, seed: int) -> Tuple[np.ndarray, np.ndarray]:
    """Randomly split active marker ids into reference and target sets

    Args:
        active: Marker ids currently under consideration
        seed: Partition seed

    Returns:
        Tuple of (reference_ids, target_ids)
    """
    active = np.asarray(active, dtype=np.int64)
    permutation = generate_unique_permutation(active.size, seed)
    reference_pos, target_pos = bisect_indices(permutation)
    return active[reference_pos], active[target_pos]
