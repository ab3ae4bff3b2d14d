"""
Command Line Interface for fxevo.

This package provides the simulate and crucible commands.
"""

from .simulate import simulate_command
from .crucible import crucible_command

__all__ = [
    'simulate_command',
    'crucible_command'
]
