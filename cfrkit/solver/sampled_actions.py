"""Traversal-scoped memo of actions sampled for non-traversing players."""

import threading
from typing import Optional

import numpy as np

from cfrkit.errors import InvariantError
from cfrkit.game.tree import GameTreeNode
from cfrkit.sampling.base import check_distribution, sample_one
from .strategy import NodePolicy


class SampledActions:
    """
    Actions chosen for sampled players during a single traversal.

    Monte Carlo CFR is only unbiased if every visit to the same infoset
    within one traversal plays the same sampled action, which matters when
    distinct histories share an infoset (imperfect recall, abstraction).
    The memo is discarded when the traversal ends.
    """

    def __init__(self, actions: Optional[dict[bytes, int]] = None):
        """
        Args:
            actions: Backing dict, typically borrowed from a KeyIntMapPool
        """
        self.actions = actions if actions is not None else {}

    def get(
        self,
        node: GameTreeNode,
        policy: NodePolicy,
        rng: np.random.Generator,
    ) -> int:
        """
        Get the memoized action at node, sampling one if this is the first visit.

        Raises:
            InvariantError: If the strategy is not a distribution or the
                chosen index is out of range for the node
        """
        key = node.info_set(node.player())
        selected = self.actions.get(key)
        if selected is None:
            strategy = policy.get_strategy()
            check_distribution(strategy)
            selected = sample_one(strategy, rng.random())
            self.actions[key] = selected

        n = node.num_children()
        if selected >= n:
            raise InvariantError(
                f"sampled action {selected} but node has {n} children "
                f"(node: {node}, policy: {policy})"
            )

        return selected

    def __len__(self) -> int:
        return len(self.actions)

    def __contains__(self, key: bytes) -> bool:
        return key in self.actions


class LockedSampledActions(SampledActions):
    """SampledActions guarded by a mutex, for traversals shared across workers."""

    def __init__(self, actions: Optional[dict[bytes, int]] = None):
        super().__init__(actions)
        self._lock = threading.Lock()

    def get(
        self,
        node: GameTreeNode,
        policy: NodePolicy,
        rng: np.random.Generator,
    ) -> int:
        with self._lock:
            return super().get(node, policy, rng)
