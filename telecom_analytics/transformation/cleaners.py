"""
Data Cleaning Module

Idempotent normalization of the source snapshot before aggregation:
- Whitespace trimming of customer text fields
- City names in "first letter upper, rest lower" case
- Negative payment amounts replaced by their absolute value

Cleaning works on the in-memory snapshot only. Nothing is written back to
the source tables, so running it on every refresh is safe.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

import polars as pl
import structlog

from telecom_analytics.sources.schemas import SourceSnapshot

logger = structlog.get_logger(__name__)

CUSTOMER_TEXT_COLUMNS = ["full_name", "phone_number", "email", "city"]


@dataclass
class CleaningStats:
    """Statistics from cleaning operations"""
    total_rows: int = 0
    strings_trimmed: int = 0
    cities_recased: int = 0
    amounts_negated: int = 0

    @property
    def format_corrections(self) -> int:
        return self.strings_trimmed + self.cities_recased + self.amounts_negated


class DataCleaner:
    """
    Data cleaner for the telecom source tables.

    Example:
        cleaner = DataCleaner()
        snapshot, stats = cleaner.clean_snapshot(snapshot)
    """

    def _trim_strings(self, df: pl.DataFrame, columns: Optional[List[str]] = None) -> pl.DataFrame:
        """Trim whitespace from string columns"""
        string_cols = columns or [
            col for col, dtype in zip(df.columns, df.dtypes)
            if dtype == pl.Utf8
        ]

        for col in string_cols:
            if col in df.columns:
                df = df.with_columns(
                    pl.col(col).str.strip_chars().alias(col)
                )

        return df

    def _capitalize_first(self, df: pl.DataFrame, column: str) -> pl.DataFrame:
        """Upper-case the first character and lower-case the rest"""
        if column not in df.columns:
            return df

        return df.with_columns(
            pl.concat_str([
                pl.col(column).str.slice(0, 1).str.to_uppercase(),
                pl.col(column).str.slice(1).str.to_lowercase(),
            ]).alias(column)
        )

    def _absolute_amounts(self, df: pl.DataFrame, column: str) -> pl.DataFrame:
        """Replace negative amounts by their absolute value"""
        if column not in df.columns:
            return df

        values = [abs(v) if v is not None and v < 0 else v for v in df[column].to_list()]
        return df.with_columns(pl.Series(column, values, dtype=df.schema[column]))

    def clean_customers(self, df: pl.DataFrame) -> Tuple[pl.DataFrame, CleaningStats]:
        """Trim text fields and normalize city case"""
        stats = CleaningStats(total_rows=len(df))

        trimmed = self._trim_strings(df, CUSTOMER_TEXT_COLUMNS)
        stats.strings_trimmed = _changed_cells(df, trimmed, CUSTOMER_TEXT_COLUMNS)

        cleaned = self._capitalize_first(trimmed, "city")
        stats.cities_recased = _changed_cells(trimmed, cleaned, ["city"])

        return cleaned, stats

    def clean_payments(self, df: pl.DataFrame) -> Tuple[pl.DataFrame, CleaningStats]:
        """Fix negative payment amounts"""
        stats = CleaningStats(total_rows=len(df))

        cleaned = self._absolute_amounts(df, "amount_paid")
        stats.amounts_negated = _changed_cells(df, cleaned, ["amount_paid"])

        return cleaned, stats

    def clean_snapshot(self, snapshot: SourceSnapshot) -> Tuple[SourceSnapshot, CleaningStats]:
        """Normalize every table that has cleaning rules"""
        customers, customer_stats = self.clean_customers(snapshot.customers)
        payments, payment_stats = self.clean_payments(snapshot.payments)

        stats = CleaningStats(
            total_rows=customer_stats.total_rows + payment_stats.total_rows,
            strings_trimmed=customer_stats.strings_trimmed,
            cities_recased=customer_stats.cities_recased,
            amounts_negated=payment_stats.amounts_negated,
        )

        logger.info(
            "Snapshot normalized",
            strings_trimmed=stats.strings_trimmed,
            cities_recased=stats.cities_recased,
            amounts_negated=stats.amounts_negated,
        )

        return snapshot.with_frames(customers=customers, payments=payments), stats


def _changed_cells(before: pl.DataFrame, after: pl.DataFrame, columns: List[str]) -> int:
    """Count non-null cells that differ between two aligned frames"""
    changed = 0
    for col in columns:
        if col not in before.columns:
            continue
        for old, new in zip(before[col].to_list(), after[col].to_list()):
            if old is not None and old != new:
                changed += 1
    return changed


def normalize_snapshot(snapshot: SourceSnapshot) -> Tuple[SourceSnapshot, CleaningStats]:
    """
    Convenience function to normalize a source snapshot.

    Args:
        snapshot: Raw source snapshot

    Returns:
        Normalized snapshot and cleaning statistics
    """
    return DataCleaner().clean_snapshot(snapshot)
