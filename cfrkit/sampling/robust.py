"""Robust sampling: traverse a fixed-size uniform random subset of actions."""

from typing import Optional

import numpy as np

from cfrkit.game.tree import GameTreeNode
from .base import Sampler


class RobustSampler(Sampler):
    """Samples k actions uniformly at random, each with probability k/n."""

    def __init__(self, k: int = 1, rng: Optional[np.random.Generator] = None):
        super().__init__()
        if k < 1:
            raise ValueError(f"k must be at least 1, got {k}")
        self.k = k
        self.rng = rng if rng is not None else np.random.default_rng()

    def sample(self, node: GameTreeNode, policy) -> np.ndarray:
        n = node.num_children()
        p = self._buffer(n)

        if n <= self.k:
            p.fill(1.0)
            return p

        p.fill(0)
        selected = self.rng.choice(n, size=self.k, replace=False)
        p[selected] = self.k / n
        return p
