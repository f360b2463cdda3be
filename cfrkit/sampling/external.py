"""External sampling: traverse every action."""

import numpy as np

from cfrkit.game.tree import GameTreeNode
from .base import Sampler


class ExternalSampler(Sampler):
    """Samples all player actions with probability 1."""

    def sample(self, node: GameTreeNode, policy) -> np.ndarray:
        n = node.num_children()
        if len(self._p) < n:
            self._p = np.ones(n, dtype=np.float32)
        return self._p[:n]
