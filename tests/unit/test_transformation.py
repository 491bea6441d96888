"""
Unit Tests - Data Transformation
"""
from decimal import Decimal

import pytest
import polars as pl

from telecom_analytics.sources.schemas import customers_frame, payments_frame
from telecom_analytics.transformation.cleaners import DataCleaner, normalize_snapshot


class TestDataCleaner:
    """Tests for DataCleaner"""

    def test_trim_strings(self):
        """Test string trimming"""
        cleaner = DataCleaner()
        df = pl.DataFrame({
            "name": ["  John  ", "Jane", "  Bob"],
            "email": [" test@example.com ", "user@test.com", None],
        })

        result = cleaner._trim_strings(df)

        assert result["name"].to_list() == ["John", "Jane", "Bob"]
        assert result["email"].to_list() == ["test@example.com", "user@test.com", None]

    def test_capitalize_first(self):
        """First letter upper, rest lower"""
        cleaner = DataCleaner()
        df = pl.DataFrame({"city": ["mUMBAI", "delhi", "NEW DELHI", None, ""]})

        result = cleaner._capitalize_first(df, "city")

        assert result["city"].to_list() == ["Mumbai", "Delhi", "New delhi", None, ""]

    def test_absolute_amounts(self):
        """Negative amounts become positive, nulls stay null"""
        cleaner = DataCleaner()
        df = payments_frame([
            {"payment_id": 1, "amount_paid": Decimal("-20.50")},
            {"payment_id": 2, "amount_paid": Decimal("15.00")},
            {"payment_id": 3, "amount_paid": None},
        ])

        result = cleaner._absolute_amounts(df, "amount_paid")

        assert result["amount_paid"].to_list() == [Decimal("20.50"), Decimal("15.00"), None]
        assert result.schema["amount_paid"] == df.schema["amount_paid"]

    def test_clean_customers_stats(self):
        cleaner = DataCleaner()
        df = customers_frame([
            {"customer_id": 1, "full_name": " Asha ", "city": " mumbai", "phone_number": "900", "email": "a@x.com"},
            {"customer_id": 2, "full_name": "Ravi", "city": "Delhi", "phone_number": "901 ", "email": None},
        ])

        result, stats = cleaner.clean_customers(df)

        assert result["full_name"].to_list() == ["Asha", "Ravi"]
        assert result["city"].to_list() == ["Mumbai", "Delhi"]
        assert result["phone_number"].to_list() == ["900", "901"]
        assert stats.strings_trimmed == 3
        assert stats.cities_recased == 1

    def test_missing_column_is_ignored(self):
        cleaner = DataCleaner()
        df = pl.DataFrame({"id": [1]})

        assert cleaner._capitalize_first(df, "city").equals(df)
        assert cleaner._absolute_amounts(df, "amount_paid").equals(df)


class TestNormalizeSnapshot:
    """Tests for snapshot normalization"""

    def test_normalizes_customers_and_payments(self, sample_snapshot):
        negative = sample_snapshot.payments.with_columns(
            pl.Series("amount_paid", [Decimal("-100.00")] + sample_snapshot.payments["amount_paid"].to_list()[1:],
                      dtype=sample_snapshot.payments.schema["amount_paid"])
        )
        snapshot = sample_snapshot.with_frames(payments=negative)

        result, stats = normalize_snapshot(snapshot)

        first = result.customers.filter(pl.col("customer_id") == 1).row(0, named=True)
        assert first["full_name"] == "Asha Rao"
        assert first["city"] == "Mumbai"
        assert result.payments["amount_paid"][0] == Decimal("100.00")
        assert stats.amounts_negated == 1
        assert stats.format_corrections > 0

    def test_is_idempotent(self, sample_snapshot):
        once, _ = normalize_snapshot(sample_snapshot)
        twice, stats = normalize_snapshot(once)

        assert twice.customers.equals(once.customers)
        assert twice.payments.equals(once.payments)
        assert stats.format_corrections == 0

    def test_leaves_other_tables_alone(self, sample_snapshot):
        result, _ = normalize_snapshot(sample_snapshot)

        assert result.plans.equals(sample_snapshot.plans)
        assert result.sim_connections.equals(sample_snapshot.sim_connections)
        assert result.fiber_connections.equals(sample_snapshot.fiber_connections)
