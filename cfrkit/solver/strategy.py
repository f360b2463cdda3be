"""Regret-matching records and the policy table that owns them."""

import logging
import threading
from dataclasses import dataclass, field
from typing import Iterator, Optional

import numpy as np

from cfrkit.errors import InvariantError
from cfrkit.game.tree import GameTreeNode
from .params import DiscountParams

logger = logging.getLogger(__name__)

# Log table growth every time this many new infosets have been added.
GROWTH_LOG_INTERVAL = 100_000


def uniform_dist(n: int) -> np.ndarray:
    """Get the uniform float32 distribution over n actions."""
    return np.full(n, 1.0 / n, dtype=np.float32)


@dataclass(eq=False)
class NodePolicy:
    """
    Regret and strategy accumulators for a single information set.

    The current strategy is derived from the accumulated regret by
    regret matching and is always a valid distribution. The time-averaged
    strategy, which converges to equilibrium, is derived from the
    reach-weighted strategy sum.

    All vectors are float32 and have length num_actions, fixed at
    creation. Accumulating methods take a per-record lock so that
    concurrent traversals can share one table.
    """
    num_actions: int
    current_strategy: np.ndarray = field(default=None)
    regret_sum: np.ndarray = field(default=None)
    strategy_sum: np.ndarray = field(default=None)
    baseline: np.ndarray = field(default=None)

    # Reach mass not yet folded into strategy_sum
    current_strategy_weight: float = 0.0

    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False,
    )
    _dirty: bool = field(default=False, repr=False, compare=False)

    def __post_init__(self):
        if self.num_actions < 1:
            raise InvariantError(f"policy needs at least one action, got {self.num_actions}")
        if self.current_strategy is None:
            self.current_strategy = uniform_dist(self.num_actions)
        if self.regret_sum is None:
            self.regret_sum = np.zeros(self.num_actions, dtype=np.float32)
        if self.strategy_sum is None:
            self.strategy_sum = np.zeros(self.num_actions, dtype=np.float32)
        if self.baseline is None:
            self.baseline = np.zeros(self.num_actions, dtype=np.float32)

    def get_strategy(self) -> np.ndarray:
        """
        Get the current strategy (the regret matching result).

        The returned array is owned by the record; do not modify it.
        """
        return self.current_strategy

    def add_regret(self, weight: float, instantaneous_regrets: np.ndarray) -> None:
        """
        Accumulate weighted instantaneous regrets.

        Args:
            weight: Reach or importance weight for this observation
            instantaneous_regrets: Per-action advantages
        """
        with self._lock:
            self.regret_sum += np.float32(weight) * instantaneous_regrets

    def add_strategy_weight(self, w: float) -> None:
        """Add reach mass to credit the current strategy with at the next update."""
        with self._lock:
            self.current_strategy_weight += w

    def get_strategy_sum(self) -> np.ndarray:
        return self.strategy_sum

    def get_average_strategy(self) -> np.ndarray:
        """
        Get the average strategy over all iterations.

        This converges to a Nash equilibrium in two-player zero-sum games.

        Returns:
            Normalized strategy sum, or uniform if nothing was accumulated
        """
        total = self.strategy_sum.sum()
        if total > 0:
            return self.strategy_sum / total
        return uniform_dist(self.num_actions)

    def next_strategy(
        self,
        discount_pos: float = 1.0,
        discount_neg: float = 1.0,
        discount_sum: float = 1.0,
    ) -> None:
        """
        Fold pending strategy weight and compute the next strategy.

        Args:
            discount_pos: Multiplier for positive accumulated regret
            discount_neg: Multiplier for negative accumulated regret (0 for CFR+)
            discount_sum: Multiplier for the accumulated strategy sum
        """
        with self._lock:
            if discount_sum != 1.0:
                self.strategy_sum *= np.float32(discount_sum)

            self.strategy_sum += np.float32(self.current_strategy_weight) * self.current_strategy

            if discount_pos != 1.0:
                positive = self.regret_sum > 0
                self.regret_sum[positive] *= np.float32(discount_pos)

            if discount_neg != 1.0:
                negative = self.regret_sum < 0
                self.regret_sum[negative] *= np.float32(discount_neg)

            self.regret_matching()
            self.current_strategy_weight = 0.0

    def regret_matching(self) -> None:
        """Recompute the current strategy proportional to positive regret."""
        np.maximum(self.regret_sum, 0, out=self.current_strategy)
        total = self.current_strategy.sum()
        if total > 0:
            self.current_strategy /= total
        else:
            # Uniform random if no positive regrets
            self.current_strategy.fill(1.0 / self.num_actions)

    def get_baseline(self) -> np.ndarray:
        """Get the per-action control variate used by variance-reduced MCCFR."""
        return self.baseline

    def set_baseline(self, v: np.ndarray) -> None:
        with self._lock:
            self.baseline[:] = v

    def update_baseline(self, action: int, value: float, alpha: float) -> None:
        """
        Move one action's baseline toward an observed value.

        Args:
            action: Action index
            value: Observed (sampled) action value
            alpha: Step size of the exponential moving average
        """
        with self._lock:
            b = self.baseline[action]
            self.baseline[action] = b + alpha * (value - b)

    def __repr__(self) -> str:
        probs = ", ".join(f"{p:.2f}" for p in self.current_strategy)
        return f"NodePolicy(n={self.num_actions}, strategy=[{probs}])"


class PolicyTable:
    """
    Tabular strategy profile for all players.

    Maps (player, infoset key) to the NodePolicy for that information set
    and owns the global iteration counter. Records are created lazily on
    first visit and never deleted.
    """

    def __init__(
        self,
        params: Optional[DiscountParams] = None,
        iteration: int = 1,
    ):
        """
        Initialize an empty policy table.

        Args:
            params: Discounting scheme (defaults to vanilla CFR)
            iteration: Starting iteration count
        """
        self.params = params or DiscountParams()
        self._iter = iteration

        self.policies: dict[tuple[int, bytes], NodePolicy] = {}
        self._touched: set[NodePolicy] = set()

        # Guards record creation and the touched set, not accumulation.
        self._lock = threading.Lock()

    @property
    def iter(self) -> int:
        """Current iteration; traversing player alternates by its parity."""
        return self._iter

    def get_policy(self, node: GameTreeNode) -> NodePolicy:
        """
        Get or create the policy for the acting player's infoset at node.

        Raises:
            InvariantError: If the stored policy has a different number of
                actions than the node has children
        """
        player = node.player()
        key = (player, node.info_set(player))
        n = node.num_children()

        policy = self.policies.get(key)
        if policy is None:
            with self._lock:
                policy = self.policies.get(key)
                if policy is None:
                    policy = NodePolicy(n)
                    self.policies[key] = policy
                    if len(self.policies) % GROWTH_LOG_INTERVAL == 0:
                        logger.info("Policy table has %d infosets", len(self.policies))

        if policy.num_actions != n:
            raise InvariantError(
                f"policy has n_actions={policy.num_actions} but node has "
                f"n_children={n}: {node} - {key[1].hex()}"
            )

        if not policy._dirty:
            with self._lock:
                self._touched.add(policy)
                policy._dirty = True

        return policy

    def get_strategy(self, node: GameTreeNode) -> np.ndarray:
        """Get the current strategy at node."""
        return self.get_policy(node).get_strategy()

    def find_policy(self, node: GameTreeNode) -> Optional[NodePolicy]:
        """Look up the policy at node without creating it."""
        player = node.player()
        return self.policies.get((player, node.info_set(player)))

    def update(self) -> None:
        """
        Advance the table by one iteration.

        Applies discounting and regret matching to every policy touched
        since the previous update.
        """
        discount_pos, discount_neg, discount_sum = self.params.discount_factors(self._iter)
        with self._lock:
            touched = list(self._touched)
            self._touched.clear()

        for policy in touched:
            policy._dirty = False
            policy.next_strategy(discount_pos, discount_neg, discount_sum)

        logger.debug(
            "Iteration %d: updated %d of %d policies",
            self._iter, len(touched), len(self.policies),
        )
        self._iter += 1

    def put(self, player: int, key: bytes, policy: NodePolicy) -> None:
        """Insert a policy, replacing any existing one for the same infoset."""
        with self._lock:
            self.policies[(player, key)] = policy

    def get_average_strategy(self, player: int, key: bytes) -> Optional[np.ndarray]:
        """
        Get the average strategy for an infoset.

        Returns:
            Average strategy, or None if the infoset was never visited
        """
        policy = self.policies.get((player, key))
        if policy is None:
            return None
        return policy.get_average_strategy()

    def records(self, player: Optional[int] = None) -> Iterator[tuple[int, bytes, NodePolicy]]:
        """Iterate over (player, key, policy), optionally for one player."""
        for (p, key), policy in self.policies.items():
            if player is None or p == player:
                yield p, key, policy

    def players(self) -> list[int]:
        return sorted({p for p, _ in self.policies})

    def num_info_sets(self) -> int:
        return len(self.policies)

    def __len__(self) -> int:
        return len(self.policies)

    def strategy_summary(self) -> list[tuple[int, bytes, np.ndarray]]:
        """Get (player, key, average strategy) for every infoset, sorted by player and key."""
        return [
            (p, key, policy.get_average_strategy())
            for (p, key), policy in sorted(self.policies.items(), key=lambda kv: kv[0])
        ]
