"""
Validation utilities for fxevo.

This module provides validation functions for tabular input data and for
the date spans handed to the simulator.
"""

from datetime import date
from typing import List, Optional

import numpy as np
import pandas as pd

from ..core.exceptions import ValidationError
from ..core.logging import get_logger


def validate_dataframe(
    df: pd.DataFrame,
    required_columns: Optional[List[str]] = None,
    min_rows: int = 1,
    check_nulls: bool = True,
    check_infinite: bool = True
) -> bool:
    """
    Validate a pandas DataFrame loaded from a data or catalog file.

    Args:
        df: DataFrame to validate
        required_columns: List of required column names
        min_rows: Minimum number of rows required
        check_nulls: Whether to warn about null values
        check_infinite: Whether to check for infinite values

    Returns:
        True if validation passes

    Raises:
        ValidationError: If validation fails
    """
    logger = get_logger(__name__)

    if df is None:
        raise ValidationError("DataFrame cannot be None")

    if not isinstance(df, pd.DataFrame):
        raise ValidationError(f"Expected pandas DataFrame, got {type(df)}")

    if len(df) < min_rows:
        raise ValidationError(f"DataFrame must have at least {min_rows} rows, got {len(df)}")

    if required_columns:
        missing_columns = [c for c in required_columns if c not in df.columns]
        if missing_columns:
            raise ValidationError(f"Missing required columns: {missing_columns}")

    if check_nulls:
        null_counts = df.isnull().sum()
        if null_counts.any():
            logger.warning(f"Found null values in columns: {null_counts[null_counts > 0].to_dict()}")

    if check_infinite:
        numeric_columns = df.select_dtypes(include=[np.number]).columns
        for col in numeric_columns:
            if np.isinf(df[col]).any():
                raise ValidationError(f"Found infinite values in column: {col}")

    logger.debug(f"DataFrame validation passed: {len(df)} rows, {len(df.columns)} columns")
    return True


def validate_span(dt_start: date, dt_stop: date, available_start: date, available_stop: date) -> bool:
    """
    Check that a simulation span lies inside the loaded data.

    Raises:
        ValidationError: If the span is inverted or starts outside the data
    """
    if dt_start > dt_stop:
        raise ValidationError(f"Span start {dt_start} is after span stop {dt_stop}")
    if dt_start < available_start or dt_start > available_stop:
        raise ValidationError(
            f"Span start {dt_start} is outside the data range",
            details=f"{available_start} .. {available_stop}"
        )
    if dt_stop > available_stop:
        get_logger(__name__).warning(
            f"Span stop {dt_stop} is past the last data date {available_stop}"
        )
    return True
