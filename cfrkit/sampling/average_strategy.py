"""Average-strategy sampling: prune actions the average strategy rarely plays."""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from cfrkit.game.tree import GameTreeNode
from .base import Sampler


@dataclass(frozen=True)
class AverageStrategyParams:
    """
    Parameters of the average-strategy sampling threshold.

    An action with strategy-sum mass s out of a total S is traversed with
    probability rho = max(epsilon, (beta + tau * s) / (beta + S)).
    """
    epsilon: float = 0.05   # Exploration floor
    tau: float = 1000.0     # Threshold scale
    beta: float = 1e6       # Bonus that keeps early iterations exploring


def compute_rho(s: np.ndarray, s_sum: float, params: AverageStrategyParams) -> np.ndarray:
    """Get the per-action sampling threshold for strategy-sum mass s."""
    rho = (params.beta + params.tau * s) / (params.beta + s_sum)
    return np.maximum(rho, params.epsilon)


class AverageStrategySampler(Sampler):
    """
    Samples each action independently with probability min(rho, 1).

    A single uniform draw x is shared by all actions of the node: action i
    is traversed iff x < rho_i, which happens with probability min(rho_i, 1).
    """

    def __init__(
        self,
        params: Optional[AverageStrategyParams] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        super().__init__()
        self.params = params or AverageStrategyParams()
        self.rng = rng if rng is not None else np.random.default_rng()

    def sample(self, node: GameTreeNode, policy) -> np.ndarray:
        n = node.num_children()
        p = self._buffer(n)

        x = self.rng.random()
        s = policy.get_strategy_sum()
        rho = compute_rho(s, float(s.sum()), self.params)
        np.copyto(p, np.where(x < rho, np.minimum(rho, 1.0), 0.0), casting="unsafe")
        return p
