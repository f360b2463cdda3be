"""Discounting parameters for the CFR weighting schemes."""

from dataclasses import dataclass


@dataclass(frozen=True)
class DiscountParams:
    """
    Configuration for regret and strategy-sum discounting.

    An all-default DiscountParams corresponds to vanilla CFR. See
    https://arxiv.org/pdf/1809.04040.pdf for the Discounted CFR family.
    """
    use_regret_matching_plus: bool = False  # CFR+: drop negative regret
    linear_weighting: bool = False          # Linear CFR
    alpha: float = 0.0                      # Discounted CFR, positive regret
    beta: float = 0.0                       # Discounted CFR, negative regret
    gamma: float = 0.0                      # Discounted CFR, strategy sum

    @classmethod
    def cfr_plus(cls) -> "DiscountParams":
        return cls(use_regret_matching_plus=True)

    @classmethod
    def linear(cls) -> "DiscountParams":
        return cls(linear_weighting=True)

    @classmethod
    def discounted(
        cls,
        alpha: float = 1.5,
        beta: float = 0.0,
        gamma: float = 2.0,
    ) -> "DiscountParams":
        """
        Discounted CFR.

        The defaults (alpha=3/2, beta=0, gamma=2) are the values reported
        to be consistently stronger than CFR+.
        """
        return cls(alpha=alpha, beta=beta, gamma=gamma)

    def discount_factors(self, iteration: int) -> tuple[float, float, float]:
        """
        Get the multiplicative decay factors for an iteration.

        Args:
            iteration: Current iteration number (1-based)

        Returns:
            Tuple of (positive regret, negative regret, strategy sum) factors
        """
        positive = 1.0
        negative = 1.0
        strategy_sum = 1.0

        # Linear CFR is equivalent to weighting each iteration's reach by
        # t / (t+1), which avoids ever-growing weights.
        if self.linear_weighting:
            strategy_sum = iteration / (iteration + 1)

        if self.use_regret_matching_plus:
            negative = 0.0

        if self.alpha != 0:
            x = float(iteration) ** self.alpha
            positive = x / (x + 1.0)

        if self.beta != 0:
            x = float(iteration) ** self.beta
            negative = x / (x + 1.0)

        if self.gamma != 0:
            strategy_sum = (iteration / (iteration + 1)) ** self.gamma

        return positive, negative, strategy_sum


def discount_factors(
    iteration: int,
    params: DiscountParams = DiscountParams(),
) -> tuple[float, float, float]:
    """Get the (positive, negative, sum) discount factors for an iteration."""
    return params.discount_factors(iteration)
