"""Outcome sampling: traverse a single action drawn from the current strategy."""

from typing import Optional

import numpy as np

from cfrkit.game.tree import GameTreeNode
from .base import Sampler, sample_one


class OutcomeSampler(Sampler):
    """
    Samples one action from the current strategy mixed with uniform exploration.

    With probability epsilon the action is drawn uniformly, otherwise from
    the current strategy. The returned probability of the selected action
    accounts for both sources.
    """

    def __init__(self, epsilon: float = 0.6, rng: Optional[np.random.Generator] = None):
        """
        Args:
            epsilon: Fraction of the time to explore off-policy, in [0, 1]
            rng: Random generator
        """
        super().__init__()
        self.epsilon = epsilon
        self.rng = rng if rng is not None else np.random.default_rng()

    def sample(self, node: GameTreeNode, policy) -> np.ndarray:
        n = node.num_children()
        strategy = policy.get_strategy()

        if self.rng.random() < self.epsilon:
            selected = int(self.rng.integers(n))
        else:
            selected = sample_one(strategy, self.rng.random())

        p = self._buffer(n)
        p.fill(0)
        q = self.epsilon / n  # Due to exploration
        q += (1.0 - self.epsilon) * float(strategy[selected])  # Due to strategy
        p[selected] = q
        return p
