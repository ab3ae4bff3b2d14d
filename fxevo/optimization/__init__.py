"""
Optimization module for fxevo.

This module provides the genome codec, the genetic operators and the
backtesting simulator that evolves Investor populations.
"""

from .genetic import InvestorGenome, bonus_policy_from_config
from .backtesting import Crucible, Investor, Simulator, SimulationResult
from .genetic.factory import Factory

__all__ = [
    "InvestorGenome",
    "bonus_policy_from_config",
    "Crucible",
    "Investor",
    "Simulator",
    "SimulationResult",
    "Factory",
]
