"""Multi-outcome sampling: draw exactly k actions without replacement."""

from typing import Optional

import numpy as np

from cfrkit.game.tree import GameTreeNode
from .base import Sampler, sample_one


def choose_k(p: np.ndarray, k: int) -> np.ndarray:
    """
    Get the inclusion probability of each action in k draws without replacement.

    Each draw picks action i with probability proportional to p[i] among
    the actions not yet drawn.

    Args:
        p: Sampling distribution for the first draw
        k: Number of draws

    Returns:
        Vector whose ith entry is the probability that i is drawn at least once
    """
    return np.array([_choose_k(p, j, k) for j in range(len(p))])


def _choose_k(p: np.ndarray, j: int, k: int) -> float:
    if k == 1:
        return float(p[j])

    descendant = 0.0
    for i, p_i in enumerate(p):
        if i != j and p_i > 0:
            chose_i = p.copy()
            chose_i[i] = 0
            chose_i /= 1.0 - p_i
            descendant += p_i * _choose_k(chose_i, j, k - 1)

    return float(p[j]) + descendant


class MultiOutcomeSampler(Sampler):
    """
    Samples exactly k actions from the exploration-mixed current strategy.

    Each selected action is assigned its unbiased inclusion probability
    under sampling without replacement. When a node has k or fewer
    actions every action is traversed.
    """

    def __init__(
        self,
        k: int = 2,
        epsilon: float = 0.05,
        rng: Optional[np.random.Generator] = None,
    ):
        super().__init__()
        if k < 1:
            raise ValueError(f"k must be at least 1, got {k}")
        if epsilon <= 0:
            raise ValueError(f"epsilon must be positive, got {epsilon}")
        self.k = k
        self.epsilon = epsilon
        self.rng = rng if rng is not None else np.random.default_rng()

    def sample(self, node: GameTreeNode, policy) -> np.ndarray:
        n = node.num_children()
        p = self._buffer(n)
        if n <= self.k:
            p.fill(1.0)
            return p

        p.fill(0)
        q = policy.get_strategy().astype(np.float64) + self.epsilon
        q /= 1.0 + n * self.epsilon
        q_eff = choose_k(q, self.k)

        for draw in range(self.k):
            sampled = sample_one(q, self.rng.random())
            p[sampled] = q_eff[sampled]
            if draw == self.k - 1:
                break

            # Remove the sampled action from being drawn again.
            q_sampled = q[sampled]
            q[sampled] = 0
            q /= 1.0 - q_sampled

        return p
