"""
Core functionality for fxevo.

This module contains configuration management, logging setup, and custom exceptions.
"""

from .config import Config
from .exceptions import (
    FXEvoException,
    ConfigurationError,
    DataError,
    NilDataError,
    GenomeError,
    MalformedDNAError,
    UnknownMetricError,
    InvalidDeltaRangeError,
    SimulationError,
    SimulationInvariantError,
)
from .logging import setup_logging, get_logger

__all__ = [
    "Config",
    "FXEvoException",
    "ConfigurationError",
    "DataError",
    "NilDataError",
    "GenomeError",
    "MalformedDNAError",
    "UnknownMetricError",
    "InvalidDeltaRangeError",
    "SimulationError",
    "SimulationInvariantError",
    "setup_logging",
    "get_logger"
]
