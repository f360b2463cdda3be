"""
Counterfactual Regret Minimization (CFR) variants.

CFR is an iterative algorithm for finding Nash equilibrium strategies
in extensive-form games. Every variant here is a configuration of the
shared TraversalEngine:
- Vanilla CFR: full enumeration, simultaneous updates
- Chance-sampling CFR: one chance outcome per traversal
- External-sampling MCCFR: opponent and chance actions sampled
- Outcome-sampling MCCFR: a single terminal history per traversal
- Average-strategy sampling (AS-MCCFR): selective exploration
- Generalized MCCFR with a pluggable sampler and optional rollouts for unsampled actions
- Variance-reduced MCCFR (VR-MCCFR) with per-action baselines
- Robust sampling: uniform subsets of the traversing player's actions
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

import numpy as np

from cfrkit.game.tree import GameTreeNode
from cfrkit.sampling import (
    AverageStrategyParams,
    AverageStrategySampler,
    OutcomeSampler,
    RobustSampler,
    Sampler,
)
from .engine import (
    BaselineCorrection,
    ImportanceCorrection,
    ReachCorrection,
    TraversalEngine,
)
from .params import DiscountParams
from .strategy import PolicyTable

logger = logging.getLogger(__name__)


class VanillaCFR(TraversalEngine):
    """
    Vanilla CFR.

    Enumerates every chance outcome and every action for both players in
    each traversal, weighting regrets by counterfactual reach and the
    average strategy by the acting player's own reach.
    """

    def __init__(self, profile: PolicyTable, rng: Optional[np.random.Generator] = None):
        super().__init__(profile, ReachCorrection(), sample_chance=False, rng=rng)


class ChanceSamplingCFR(TraversalEngine):
    """Vanilla CFR with a single sampled chance outcome per traversal."""

    def __init__(self, profile: PolicyTable, rng: Optional[np.random.Generator] = None):
        super().__init__(profile, ReachCorrection(), sample_chance=True, rng=rng)


class ExternalSamplingCFR(TraversalEngine):
    """
    External-sampling MCCFR.

    The traversing player explores all actions; chance and the opponent
    are sampled once per infoset per traversal. With thread_safe=True,
    several threads may call run() concurrently over one PolicyTable.
    """

    def __init__(
        self,
        profile: PolicyTable,
        thread_safe: bool = False,
        rng: Optional[np.random.Generator] = None,
    ):
        super().__init__(
            profile,
            ImportanceCorrection(),
            sample_chance=True,
            thread_safe=thread_safe,
            rng=rng,
        )


class OutcomeSamplingCFR(TraversalEngine):
    """
    Outcome-sampling MCCFR.

    The traversing player samples a single action with epsilon
    exploration, so each traversal visits exactly one terminal history.
    """

    def __init__(
        self,
        profile: PolicyTable,
        epsilon: float = 0.6,
        rng: Optional[np.random.Generator] = None,
    ):
        rng = rng if rng is not None else np.random.default_rng()
        super().__init__(
            profile,
            ImportanceCorrection(),
            traversing_sampler=OutcomeSampler(epsilon, rng),
            rng=rng,
        )


class AverageStrategySamplingCFR(TraversalEngine):
    """
    Average-strategy sampling MCCFR.

    Prunes the traversing player's actions that the average strategy
    rarely plays. See Gibson et al., "Efficient Monte Carlo Counterfactual
    Regret Minimization in Games with Many Player Actions".
    """

    def __init__(
        self,
        profile: PolicyTable,
        params: Optional[AverageStrategyParams] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        rng = rng if rng is not None else np.random.default_rng()
        super().__init__(
            profile,
            ImportanceCorrection(),
            traversing_sampler=AverageStrategySampler(params, rng),
            rng=rng,
        )


class MCCFR(TraversalEngine):
    """
    Generalized Monte Carlo CFR with a pluggable traversing-player sampler.

    With rollout=True, actions the sampler skipped are estimated with a
    single on-policy rollout instead of counting as zero.
    """

    def __init__(
        self,
        profile: PolicyTable,
        sampler: Sampler,
        rollout: bool = False,
        rng: Optional[np.random.Generator] = None,
    ):
        super().__init__(
            profile,
            ImportanceCorrection(),
            traversing_sampler=sampler,
            rollout=rollout,
            rng=rng,
        )


class RobustSamplingCFR(MCCFR):
    """MCCFR exploring a uniform random subset of k traversing-player actions."""

    def __init__(
        self,
        profile: PolicyTable,
        k: int = 1,
        rng: Optional[np.random.Generator] = None,
    ):
        rng = rng if rng is not None else np.random.default_rng()
        super().__init__(profile, RobustSampler(k, rng), rng=rng)


@dataclass(frozen=True)
class VarianceReductionParams:
    """Configuration for VR-MCCFR baselines."""
    baseline_step: float = 0.5  # Moving-average step toward observed values


class VRMCCFR(TraversalEngine):
    """
    Variance-reduced MCCFR.

    Both the traversing and the non-traversing players sample through
    their own samplers, and every action value is estimated with a
    per-action baseline. See Schmid et al., "Variance Reduction in Monte
    Carlo Counterfactual Regret Minimization (VR-MCCFR) for Extensive
    Form Games using Baselines".
    """

    def __init__(
        self,
        profile: PolicyTable,
        traversing_sampler: Optional[Sampler] = None,
        sampled_sampler: Optional[Sampler] = None,
        params: Optional[VarianceReductionParams] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        """
        Args:
            profile: Policy table to read and update
            traversing_sampler: Sampler for the traversing player
                (default: outcome sampling with epsilon 0.6)
            sampled_sampler: Sampler for the other player
                (default: on-policy outcome sampling)
            params: Baseline configuration
            rng: Random generator
        """
        rng = rng if rng is not None else np.random.default_rng()
        self.params = params or VarianceReductionParams()
        super().__init__(
            profile,
            BaselineCorrection(self.params.baseline_step),
            traversing_sampler=traversing_sampler or OutcomeSampler(0.6, rng),
            sampled_sampler=sampled_sampler or OutcomeSampler(0.0, rng),
            rng=rng,
        )


ALGORITHMS = (
    "vanilla",
    "chance",
    "external",
    "outcome",
    "average",
    "robust",
    "vr",
)


@dataclass
class SolverConfig:
    """Configuration for CFR solver."""
    algorithm: str = "external"
    num_iterations: int = 10000
    runs_per_iteration: int = 1    # Traversals between table updates
    discount: DiscountParams = field(default_factory=DiscountParams)
    epsilon: float = 0.6           # Exploration for outcome sampling
    robust_k: int = 1              # Subset size for robust sampling
    seed: Optional[int] = None
    report_interval: int = 100     # Iterations between callbacks


def make_engine(
    config: SolverConfig,
    profile: PolicyTable,
    rng: Optional[np.random.Generator] = None,
) -> TraversalEngine:
    """
    Build the engine named by config.algorithm.

    Raises:
        ValueError: If the algorithm is unknown
    """
    if config.algorithm == "vanilla":
        return VanillaCFR(profile, rng)
    if config.algorithm == "chance":
        return ChanceSamplingCFR(profile, rng)
    if config.algorithm == "external":
        return ExternalSamplingCFR(profile, rng=rng)
    if config.algorithm == "outcome":
        return OutcomeSamplingCFR(profile, config.epsilon, rng)
    if config.algorithm == "average":
        return AverageStrategySamplingCFR(profile, rng=rng)
    if config.algorithm == "robust":
        return RobustSamplingCFR(profile, config.robust_k, rng)
    if config.algorithm == "vr":
        return VRMCCFR(profile, rng=rng)
    raise ValueError(f"Unknown algorithm {config.algorithm!r}, expected one of {ALGORITHMS}")


class CFRSolver:
    """
    Drives an engine for a fixed number of iterations.

    Each iteration performs runs_per_iteration traversals from a fresh
    root and then advances the policy table.
    """

    def __init__(
        self,
        root_factory: Callable[[], GameTreeNode],
        config: Optional[SolverConfig] = None,
        profile: Optional[PolicyTable] = None,
    ):
        """
        Initialize CFR solver.

        Args:
            root_factory: Callable returning a fresh game root
            config: Solver configuration
            profile: Existing policy table to continue from
        """
        self.root_factory = root_factory
        self.config = config or SolverConfig()
        self.profile = profile or PolicyTable(self.config.discount)
        self.rng = np.random.default_rng(self.config.seed)
        self.engine = make_engine(self.config, self.profile, self.rng)

        self.total_value = 0.0
        self.num_runs = 0

    @property
    def mean_value(self) -> float:
        """Running mean of the root value over all traversals so far."""
        return self.total_value / max(1, self.num_runs)

    def solve(
        self,
        callback: Optional[Callable[[int, float], None]] = None,
    ) -> PolicyTable:
        """
        Run the configured CFR algorithm.

        Args:
            callback: Optional callback(iteration, mean_value) for progress

        Returns:
            The trained policy table
        """
        logger.info(
            "Solving with %s for %d iterations",
            self.config.algorithm, self.config.num_iterations,
        )
        for i in range(1, self.config.num_iterations + 1):
            for _ in range(self.config.runs_per_iteration):
                self.total_value += self.engine.run(self.root_factory())
                self.num_runs += 1

            self.profile.update()

            if callback and i % self.config.report_interval == 0:
                callback(i, self.mean_value)

        logger.info(
            "Finished %d iterations, %d infosets, mean value %.4f",
            self.config.num_iterations, len(self.profile), self.mean_value,
        )
        return self.profile
