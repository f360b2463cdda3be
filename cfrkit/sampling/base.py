"""Sampler contract and sampling helpers shared by the samplers and engines."""

from abc import ABC, abstractmethod

import numpy as np

from cfrkit.errors import InvariantError
from cfrkit.game.tree import PROB_TOLERANCE, GameTreeNode


class Sampler(ABC):
    """
    Selects which children of a decision node to traverse.

    sample() returns a vector p over the node's children: p[i] > 0 marks
    action i as traversed, sampled with probability p[i]; p[i] == 0 marks
    it skipped. The returned array may be reused by the next call, so
    callers must copy it before sampling again.
    """

    def __init__(self):
        self._p = np.zeros(0, dtype=np.float32)

    @abstractmethod
    def sample(self, node: GameTreeNode, policy) -> np.ndarray:
        """Get the sampling probability of each child of node."""

    def _buffer(self, n: int) -> np.ndarray:
        """Get the reusable result buffer, grown to at least n entries."""
        if len(self._p) < n:
            self._p = np.zeros(n, dtype=np.float32)
        return self._p[:n]


def sample_one(pv: np.ndarray, x: float) -> int:
    """
    Inverse-CDF sampling.

    Args:
        pv: Probability vector
        x: Uniform random number in [0, 1)

    Returns:
        The first index i where sum(pv[:i+1]) > x

    Raises:
        InvariantError: If pv sums to less than one
    """
    cum_prob = 0.0
    for i, p in enumerate(pv):
        cum_prob += p
        if cum_prob > x:
            return i

    if cum_prob < 1.0 - PROB_TOLERANCE:
        raise InvariantError(f"probability distribution does not sum to 1! x={x}, pv={pv}")

    return len(pv) - 1


def check_distribution(pv: np.ndarray) -> None:
    """
    Verify that pv is a probability distribution.

    Raises:
        InvariantError: If pv has negative entries or does not sum to ~1
    """
    total = float(np.sum(pv, dtype=np.float64))
    if abs(total - 1.0) > PROB_TOLERANCE or np.any(pv < 0):
        raise InvariantError(f"malformed strategy {pv} sums to {total}")
