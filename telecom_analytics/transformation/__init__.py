"""
Data Transformation Module
"""
from .cleaners import CleaningStats, DataCleaner, normalize_snapshot

__all__ = [
    "CleaningStats",
    "DataCleaner",
    "normalize_snapshot",
]
