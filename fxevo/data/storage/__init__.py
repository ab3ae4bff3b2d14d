"""
Data storage for fxevo.

Concrete DataAccessPort implementations backed by files.
"""

from .csv_store import CSVDataStore

__all__ = [
    'CSVDataStore'
]
