"""
Custom exceptions for the fxevo backtesting engine.

This module defines a hierarchy of exceptions that separates recoverable
conditions (missing market data, a single bad genome) from fatal invariant
violations that must halt a simulation run.
"""

from typing import Optional, Any

class FXEvoException(Exception):
    """Base exception for errors."""

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


class ConfigurationError(FXEvoException):
    """Raised when there are issues with configuration settings."""
    pass


class DataError(FXEvoException):
    """Raised when there are issues with data loading or retrieval."""
    pass


class NilDataError(DataError):
    """
    Raised when market data is absent for a requested date or field.

    This is an expected condition: Influencers turn it into an abstain vote
    and Investors count it rather than failing.
    """
    pass


class ValidationError(FXEvoException):
    """Raised when data or parameters fail validation."""
    pass


class GenomeError(FXEvoException):
    """Raised when an Investor or Influencer cannot be built from its DNA."""
    pass


class MalformedDNAError(GenomeError):
    """Raised when a DNA string cannot be decoded."""
    pass


class UnknownMetricError(GenomeError):
    """Raised when DNA names a metric missing from the metric catalog."""
    pass


class InvalidDeltaRangeError(GenomeError):
    """Raised when a Delta1/Delta2 value lies outside the metric's bounds."""
    pass


class InfluencerError(FXEvoException):
    """Raised when an Influencer cannot produce a prediction."""
    pass


class InvestorError(FXEvoException):
    """Raised when an Investor cannot decide or act on a given day."""
    pass


class OptimizationError(FXEvoException):
    """Raised when there are issues during genetic optimization."""
    pass


class SimulationError(FXEvoException):
    """Raised when there are issues during a simulation run."""
    pass


class SimulationInvariantError(SimulationError):
    """
    Raised when simulation state is corrupt.

    Examples are a population-size mismatch or an exchange rate that is
    missing or zero at settlement. The run halts with the offending date,
    investor and field in ``details``.
    """
    pass
