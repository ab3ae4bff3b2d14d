"""
Fitness scaling for genetic selection.

An Investor's raw fitness blends normalised profit with decision
correctness (see Investor.calculate_fitness_score). A BonusPolicy may then
scale that score upward for Investors whose annualized return clears
configured thresholds, making strong performers more likely to be chosen
as parents.
"""

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Sequence, Tuple

from ...core.exceptions import ConfigurationError
from ...core.logging import get_logger

logger = get_logger(__name__)


class BonusPolicy(ABC):
    """Abstract base class for fitness bonus policies."""

    @abstractmethod
    def apply(self, score: float, annualized_return: float) -> float:
        """
        Scale a fitness score.

        Args:
            score: Raw fitness score, already floored at 0
            annualized_return: The Investor's annualized return as a fraction

        Returns:
            The scaled score, never below ``score``
        """
        pass


class NoBonus(BonusPolicy):
    """Leave scores unchanged."""

    def apply(self, score: float, annualized_return: float) -> float:
        return score


class StepBonusPolicy(BonusPolicy):
    """
    Piecewise step multiplier keyed on annualized return.

    With steps ``[(0.10, 1.5), (0.25, 2.0)]`` a 12% return scales the score
    by 1.5, a 30% return by 2.0, and anything under 10% is unchanged.
    """

    def __init__(self, steps: Iterable[Sequence[float]]):
        """
        Args:
            steps: (threshold, multiplier) pairs in any order

        Raises:
            ConfigurationError: If a multiplier is below 1
        """
        parsed: List[Tuple[float, float]] = []
        for step in steps:
            threshold, multiplier = float(step[0]), float(step[1])
            if multiplier < 1:
                raise ConfigurationError("Bonus multiplier must be >= 1", details=list(step))
            parsed.append((threshold, multiplier))
        self.steps = sorted(parsed)

    def multiplier_for(self, annualized_return: float) -> float:
        multiplier = 1.0
        for threshold, step_multiplier in self.steps:
            if annualized_return >= threshold:
                multiplier = step_multiplier
            else:
                break
        return multiplier

    def apply(self, score: float, annualized_return: float) -> float:
        return score * self.multiplier_for(annualized_return)

    def __repr__(self) -> str:
        return f"StepBonusPolicy(steps={self.steps})"


def bonus_policy_from_config(steps: Optional[Iterable[Sequence[float]]]) -> BonusPolicy:
    """Build the bonus policy for ``fitness.bonus_steps``; no steps means no bonus."""
    steps = list(steps or [])
    if not steps:
        return NoBonus()
    policy = StepBonusPolicy(steps)
    logger.debug(f"Using fitness bonus policy {policy}")
    return policy


def fitness_sum(population) -> float:
    """Sum of cached fitness scores, computing any that are missing."""
    return sum(investor.calculate_fitness_score() for investor in population)
