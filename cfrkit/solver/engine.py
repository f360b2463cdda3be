"""
Recursive traversal core shared by every CFR variant.

All variants walk the tree with the same terminal/chance/player dispatch
and differ only along a few orthogonal axes:
- whether chance nodes are enumerated or sampled,
- which of the traversing player's actions are explored (a Sampler),
- how a non-traversing player's action is chosen (a memoized on-policy
  draw, or a Sampler combined with baselines),
- how values are importance-corrected and how regret and average-strategy
  weight are attributed (a Correction).

Values are always expressed from the perspective of the player who acted
last. At the root that is the root's acting player, or player 0 when the
root is a chance node.
"""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional

import numpy as np

from cfrkit.errors import InvariantError
from cfrkit.game.tree import PROB_TOLERANCE, GameTreeNode, NodeType
from cfrkit.sampling.base import Sampler, check_distribution, sample_one
from .pools import (
    FloatSlicePool,
    KeyIntMapPool,
    ThreadSafeFloatSlicePool,
    ThreadSafeKeyIntMapPool,
)
from .sampled_actions import LockedSampledActions, SampledActions
from .strategy import NodePolicy, PolicyTable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reach:
    """
    Probabilities accumulated along the path from the root.

    reach0/reach1 are each player's own contribution to reaching the node,
    chance is the chance contribution (only tracked when chance nodes are
    enumerated) and sample is the probability with which the sampling
    scheme visits the node.
    """
    reach0: float = 1.0
    reach1: float = 1.0
    chance: float = 1.0
    sample: float = 1.0

    def own(self, player: int) -> float:
        return self.reach0 if player == 0 else self.reach1

    def counterfactual(self, player: int) -> float:
        """Reach probability of everyone except player (opponent and chance)."""
        opponent = self.reach1 if player == 0 else self.reach0
        return opponent * self.chance

    def after_action(self, player: int, p: float, q: float = 1.0) -> "Reach":
        """Reach after player takes an action played with p and sampled with q."""
        if player == 0:
            return Reach(self.reach0 * p, self.reach1, self.chance, self.sample * q)
        return Reach(self.reach0, self.reach1 * p, self.chance, self.sample * q)

    def after_chance(self, p: float) -> "Reach":
        return Reach(self.reach0, self.reach1, self.chance * p, self.sample)


class Correction(ABC):
    """How sampled values are corrected and feedback is attributed."""

    # Whether every player node updates regrets in the same traversal
    # (simultaneous updates) instead of alternating the traversing player.
    simultaneous = False

    @abstractmethod
    def terminal(self, utility: float, reach: Reach) -> float:
        """Get the value returned for a terminal node."""

    @abstractmethod
    def regret_weight(self, player: int, reach: Reach) -> float:
        """Get the weight of the instantaneous regrets at a traversing node."""

    def own_strategy_weight(self, player: int, reach: Reach) -> Optional[float]:
        """Strategy weight credited at a traversing node, if any."""
        return None

    def sampled_strategy_weight(self, reach: Reach) -> Optional[float]:
        """
        Strategy weight credited at a non-traversing node.

        Monte Carlo CFR performs "stochastic" average strategy updates,
        crediting the current strategy with the inverse probability of
        having sampled the node.
        """
        if reach.sample > 0:
            return 1.0 / reach.sample
        return None

    def action_value(
        self,
        policy: NodePolicy,
        action: int,
        q: float,
        value: float,
        baseline: float,
    ) -> float:
        """Get the estimated value of a sampled action from its subtree value."""
        return value

    def unsampled_value(self, baseline: float) -> float:
        """Get the estimated value of an action that was not sampled."""
        return 0.0


class ReachCorrection(Correction):
    """
    Exact (or chance-sampled) CFR with simultaneous updates.

    Regret is weighted by the counterfactual reach probability and the
    average strategy by the acting player's own reach.
    """
    simultaneous = True

    def terminal(self, utility: float, reach: Reach) -> float:
        return utility

    def regret_weight(self, player: int, reach: Reach) -> float:
        return reach.counterfactual(player)

    def own_strategy_weight(self, player: int, reach: Reach) -> Optional[float]:
        return reach.own(player)


class ImportanceCorrection(Correction):
    """
    Importance-weighted Monte Carlo CFR.

    Opponent and chance actions are sampled on-policy, so their
    probabilities cancel. Terminal utilities are divided by the
    traversing player's accumulated sampling probability, which makes
    every returned value an unbiased counterfactual value estimate.
    """

    def terminal(self, utility: float, reach: Reach) -> float:
        return utility / reach.sample

    def regret_weight(self, player: int, reach: Reach) -> float:
        return 1.0


class BaselineCorrection(Correction):
    """
    Variance-reduced MCCFR.

    Every action value is estimated with a per-action control variate:
    u = b + (r - b) / q when the action was sampled, else u = b. Terminal
    utilities are not rescaled; instead regret is weighted by the ratio of
    counterfactual reach to sampling probability.
    """

    def __init__(self, baseline_step: float = 0.5):
        """
        Args:
            baseline_step: Step size of the baseline moving average
        """
        self.baseline_step = baseline_step

    def terminal(self, utility: float, reach: Reach) -> float:
        return utility

    def regret_weight(self, player: int, reach: Reach) -> float:
        return reach.counterfactual(player) / reach.sample

    def action_value(
        self,
        policy: NodePolicy,
        action: int,
        q: float,
        value: float,
        baseline: float,
    ) -> float:
        policy.update_baseline(action, value, self.baseline_step)
        return baseline + (value - baseline) / q

    def unsampled_value(self, baseline: float) -> float:
        return baseline


@dataclass
class _Traversal:
    """State scoped to a single run()."""
    traversing_player: Optional[int]
    sampled_actions: SampledActions


class TraversalEngine:
    """
    One recursive CFR evaluator, configured per variant.

    Each call to run() performs a single traversal from the root, reads
    the current strategy from the policy table and issues regret and
    strategy-weight updates back into it. The caller advances the table
    with PolicyTable.update() between batches of runs.
    """

    def __init__(
        self,
        profile: PolicyTable,
        correction: Correction,
        sample_chance: bool = True,
        traversing_sampler: Optional[Sampler] = None,
        sampled_sampler: Optional[Sampler] = None,
        rollout: bool = False,
        thread_safe: bool = False,
        rng: Optional[np.random.Generator] = None,
    ):
        """
        Initialize the engine.

        Args:
            profile: Policy table to read and update
            correction: Value correction and feedback attribution policy
            sample_chance: Sample one chance outcome instead of enumerating
            traversing_sampler: Chooses the traversing player's actions
                (None explores every action)
            sampled_sampler: Chooses non-traversing players' actions
                (None draws one memoized action from the current strategy)
            rollout: Estimate unsampled actions with a single on-policy rollout
            thread_safe: Use locked pools and memo so run() may be called
                concurrently from several threads
            rng: Random generator for action sampling
        """
        if rollout and not isinstance(correction, ImportanceCorrection):
            raise ValueError("rollouts require importance-corrected values")

        self.profile = profile
        self.correction = correction
        self.sample_chance = sample_chance
        self.traversing_sampler = traversing_sampler
        self.sampled_sampler = sampled_sampler
        self.rollout = rollout
        self.thread_safe = thread_safe
        self.rng = rng if rng is not None else np.random.default_rng()

        if thread_safe:
            self._floats = ThreadSafeFloatSlicePool()
            self._maps = ThreadSafeKeyIntMapPool()
        else:
            self._floats = FloatSlicePool()
            self._maps = KeyIntMapPool()

    def traversing_player(self) -> Optional[int]:
        """Get the player whose regrets the next run updates (None = all)."""
        if self.correction.simultaneous:
            return None
        return self.profile.iter % 2

    def run(self, root: GameTreeNode) -> float:
        """
        Perform one traversal of the tree.

        Args:
            root: Root node of the game tree

        Returns:
            Estimated value of the root for its acting player (player 0
            when the root is a chance node)
        """
        with self._maps.scratch() as actions:
            memo = LockedSampledActions(actions) if self.thread_safe else SampledActions(actions)
            traversal = _Traversal(self.traversing_player(), memo)
            last_player = root.player() if root.is_player else 0
            return self._traverse(root, last_player, Reach(), traversal)

    def run_parallel(self, root_factory, num_runs: int, max_workers: int = 4) -> list[float]:
        """
        Perform independent traversals concurrently.

        Args:
            root_factory: Callable returning a fresh root node per run
            num_runs: Number of traversals
            max_workers: Number of worker threads

        Returns:
            Root value of each run
        """
        if not self.thread_safe:
            raise ValueError("run_parallel requires an engine built with thread_safe=True")

        logger.debug("Running %d traversals on %d workers", num_runs, max_workers)
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [executor.submit(self.run, root_factory()) for _ in range(num_runs)]
            return [f.result() for f in futures]

    def _traverse(
        self,
        node: GameTreeNode,
        last_player: int,
        reach: Reach,
        traversal: _Traversal,
    ) -> float:
        try:
            node_type = node.type()
            if node_type == NodeType.TERMINAL:
                return self.correction.terminal(float(node.utility(last_player)), reach)
            if node_type == NodeType.CHANCE:
                return self._chance_node(node, last_player, reach, traversal)

            player = node.player()
            if traversal.traversing_player is None or player == traversal.traversing_player:
                value = self._traversing_node(node, player, reach, traversal)
            else:
                value = self._sampled_node(node, player, reach, traversal)

            return value if player == last_player else -value
        finally:
            node.close()

    def _chance_node(
        self,
        node: GameTreeNode,
        last_player: int,
        reach: Reach,
        traversal: _Traversal,
    ) -> float:
        if self.sample_chance:
            # Sampling probabilities cancel out of the counterfactual value.
            child = node.sample_child()
            return self._traverse(child, last_player, reach, traversal)

        expected_value = 0.0
        total = 0.0
        for i in range(node.num_children()):
            p = node.get_child_probability(i)
            total += p
            child = node.get_child(i)
            expected_value += p * self._traverse(child, last_player, reach.after_chance(p), traversal)

        if abs(total - 1.0) > PROB_TOLERANCE:
            raise InvariantError(f"chance probabilities sum to {total} != 1: {node}")

        return expected_value

    def _traversing_node(
        self,
        node: GameTreeNode,
        player: int,
        reach: Reach,
        traversal: _Traversal,
    ) -> float:
        n = node.num_children()
        if n == 1:
            # No real decision, skip the regret bookkeeping.
            return self._traverse(node.get_child(0), player, reach, traversal)

        policy = self.profile.get_policy(node)
        strategy = policy.get_strategy()
        check_distribution(strategy)
        baseline = policy.get_baseline()

        with self._floats.scratch(n) as qs, self._floats.scratch(n) as advantages:
            if self.traversing_sampler is None:
                qs.fill(1.0)
            else:
                qs[:] = self.traversing_sampler.sample(node, policy)

            for i in range(n):
                q = float(qs[i])
                b = float(baseline[i])
                if q > 0:
                    child_reach = reach.after_action(player, float(strategy[i]), q)
                    value = self._traverse(node.get_child(i), player, child_reach, traversal)
                    if self.rollout:
                        # Rollouts fill in for unsampled actions, so the
                        # sampled value is not scaled up by 1/q.
                        value *= q
                    advantages[i] = self.correction.action_value(policy, i, q, value, b)
                elif self.rollout:
                    advantages[i] = self._rollout(node.get_child(i), player) / reach.sample
                else:
                    advantages[i] = self.correction.unsampled_value(b)

            expected_util = float(np.dot(strategy, advantages))

            # Center the action values into instantaneous advantages.
            advantages -= expected_util
            policy.add_regret(self.correction.regret_weight(player, reach), advantages)

        w = self.correction.own_strategy_weight(player, reach)
        if w is not None:
            policy.add_strategy_weight(w)

        return expected_util

    def _sampled_node(
        self,
        node: GameTreeNode,
        player: int,
        reach: Reach,
        traversal: _Traversal,
    ) -> float:
        policy = self.profile.get_policy(node)

        w = self.correction.sampled_strategy_weight(reach)
        if w is not None:
            policy.add_strategy_weight(w)

        if self.sampled_sampler is None:
            # The sampling probability cancels out of the counterfactual value.
            selected = traversal.sampled_actions.get(node, policy, self.rng)
            return self._traverse(node.get_child(selected), player, reach, traversal)

        n = node.num_children()
        strategy = policy.get_strategy()
        baseline = policy.get_baseline()
        with self._floats.scratch(n) as qs, self._floats.scratch(n) as values:
            qs[:] = self.sampled_sampler.sample(node, policy)
            for i in range(n):
                q = float(qs[i])
                b = float(baseline[i])
                if q > 0:
                    child_reach = reach.after_action(player, float(strategy[i]), q)
                    value = self._traverse(node.get_child(i), player, child_reach, traversal)
                    values[i] = self.correction.action_value(policy, i, q, value, b)
                else:
                    values[i] = self.correction.unsampled_value(b)

            return float(np.dot(strategy, values))

    def _rollout(self, node: GameTreeNode, player: int) -> float:
        """Estimate a subtree's value for player with one on-policy rollout."""
        try:
            node_type = node.type()
            if node_type == NodeType.TERMINAL:
                return float(node.utility(player))
            if node_type == NodeType.CHANCE:
                return self._rollout(node.sample_child(), player)

            policy = self.profile.get_policy(node)
            selected = sample_one(policy.get_strategy(), self.rng.random())
            return self._rollout(node.get_child(selected), player)
        finally:
            node.close()
