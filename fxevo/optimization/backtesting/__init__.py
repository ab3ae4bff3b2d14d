"""
Backtesting: Influencers, Investors and the generational Simulator.
"""

from .influencer import Action, Influencer, Prediction
from .metrics import SimulationStatistics, TopInvestor, annualized_return
from .investor import CourseOfAction, Investment, Investor, SellInfo, Strategy
from .simulator import SimulationResult, Simulator
from .crucible import Crucible, CrucibleReport

__all__ = [
    "Action",
    "Influencer",
    "Prediction",
    "SimulationStatistics",
    "TopInvestor",
    "annualized_return",
    "CourseOfAction",
    "Investment",
    "Investor",
    "SellInfo",
    "Strategy",
    "SimulationResult",
    "Simulator",
    "Crucible",
    "CrucibleReport",
]
