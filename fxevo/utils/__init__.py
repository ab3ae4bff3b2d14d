"""
Utility functions for fxevo.

This module contains calendar helpers, validators and small numeric helpers.
"""

from .validators import validate_dataframe, validate_span
from .helpers import ensure_directory, safe_divide, format_percentage, generate_ref_no
from .dates import (
    GenerationDuration,
    parse_generation_duration,
    format_generation_duration,
    to_date,
    add_days,
    add_duration,
    count_generations,
)

__all__ = [
    "validate_dataframe",
    "validate_span",
    "ensure_directory",
    "safe_divide",
    "format_percentage",
    "generate_ref_no",
    "GenerationDuration",
    "parse_generation_duration",
    "format_generation_duration",
    "to_date",
    "add_days",
    "add_duration",
    "count_generations",
]
