"""
analysis.py - Fairness tooling for winner selection.

The draw engine picks participants[word % n] from a 256-bit random word.
This module quantifies how fair that is:

1. modulo_bias() - Exact worst-case bias of the modulo step
2. simulate_winner_counts() - Monte Carlo winner histogram (numpy)
3. uniformity_pvalue() - Chi-square goodness of fit against uniform (scipy)

Vectorization:
    256-bit words are drawn as four 64-bit limbs and reduced modulo n with
    Horner's rule, limb by limb, so every intermediate stays below 2**64.
"""

from __future__ import annotations
from fractions import Fraction
from typing import Optional, Sequence

import numpy as np
from scipy import stats

from .core import RangeError

WORD_BITS = 256
LIMB_BITS = 64
MAX_SIMULATED_PARTICIPANTS = 2 ** 32


def select_winner_index(word: int, participant_count: int) -> int:
    """Index the engine selects for a random word."""
    if participant_count < 1:
        raise RangeError(f"participant_count must be positive, got {participant_count}")
    return word % participant_count


def modulo_bias(word_bits: int, participant_count: int) -> Fraction:
    """
    Relative excess probability of the most favoured index.

    With 2**word_bits = q * n + r, the first r indices win q + 1 times out of
    2**word_bits and the rest q times, so the favoured ones are ahead by 1/q.
    Zero when n divides 2**word_bits.

    Example:
        >>> modulo_bias(3, 3)   # 8 = 2*3 + 2
        Fraction(1, 2)
    """
    if word_bits < 1:
        raise RangeError(f"word_bits must be positive, got {word_bits}")
    if participant_count < 1:
        raise RangeError(f"participant_count must be positive, got {participant_count}")
    q, r = divmod(2 ** word_bits, participant_count)
    if r == 0:
        return Fraction(0)
    if q == 0:
        raise RangeError(f"{participant_count} participants exceed the {word_bits}-bit word range")
    return Fraction(1, q)


def simulate_winner_counts(
    participant_count: int,
    draws: int,
    seed: Optional[int] = None,
) -> np.ndarray:
    """
    Winner histogram over `draws` simulated draws.

    Args:
        participant_count: Number of entrants (1..2**32)
        draws: Number of simulated draws
        seed: Seed for numpy's default generator (None = fresh entropy)

    Returns:
        int64 array of length participant_count; entry i counts wins of index i
    """
    if not 1 <= participant_count <= MAX_SIMULATED_PARTICIPANTS:
        raise RangeError(
            f"participant_count must be in 1..{MAX_SIMULATED_PARTICIPANTS}, got {participant_count}"
        )
    if draws < 0:
        raise RangeError(f"draws must be non-negative, got {draws}")

    rng = np.random.default_rng(seed)
    limbs = rng.integers(
        0, np.iinfo(np.uint64).max, size=(draws, WORD_BITS // LIMB_BITS),
        dtype=np.uint64, endpoint=True,
    )
    n = np.uint64(participant_count)
    radix = np.uint64(pow(2, LIMB_BITS, participant_count))

    # Most significant limb first.
    index = np.zeros(draws, dtype=np.uint64)
    for column in range(limbs.shape[1]):
        index = (index * radix) % n
        index = (index + limbs[:, column] % n) % n

    return np.bincount(index.astype(np.int64), minlength=participant_count).astype(np.int64)


def uniformity_pvalue(counts: Sequence[int]) -> float:
    """
    Chi-square p-value of counts against a uniform distribution.

    Small values (e.g. below 0.01) indicate the counts are unlikely to come
    from a fair selection.
    """
    observed = np.asarray(counts, dtype=np.float64)
    if observed.ndim != 1 or observed.size < 2:
        raise RangeError("need counts for at least two participants")
    if np.any(observed < 0) or observed.sum() <= 0:
        raise RangeError("counts must be non-negative with a positive total")
    result = stats.chisquare(observed)
    return float(result.pvalue)
