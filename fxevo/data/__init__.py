"""
Data layer for fxevo.

This module provides the data access port used by the simulation engine,
the metric influencer catalog, and file-backed stores.
"""

from .access import DataAccessPort, FieldSelector, InMemoryDataSource, MetricInfo, Record
from .rolling_stats import RollingStats
from .subclasses import LocaleType, MetricCatalog, MInfluencerSubclass, Predictor
from .storage.csv_store import CSVDataStore

__all__ = [
    'DataAccessPort',
    'FieldSelector',
    'InMemoryDataSource',
    'MetricInfo',
    'Record',
    'RollingStats',
    'LocaleType',
    'MetricCatalog',
    'MInfluencerSubclass',
    'Predictor',
    'CSVDataStore'
]
