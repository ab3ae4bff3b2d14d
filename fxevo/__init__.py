"""
fxevo - Evolutionary Currency Trading Backtester

Evolves populations of Investors, each advised by metric-driven
Influencers, against historical econometric data for a currency pair.
"""

__version__ = "0.1.0"
__author__ = "grant.t.morgan@gmail.com"

from .core.config import Config
from .core.logging import setup_logging
from .data import CSVDataStore, MetricCatalog
from .optimization import Crucible, Factory, Simulator

__all__ = [
    "Config",
    "setup_logging",
    "CSVDataStore",
    "MetricCatalog",
    "Crucible",
    "Factory",
    "Simulator"
]
