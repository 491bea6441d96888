"""
Unit Tests - Risk Classification
"""
from datetime import date, timedelta

import pytest

from telecom_analytics.database.models import RiskLevel
from telecom_analytics.pipeline.aggregations import customer_value
from telecom_analytics.pipeline.rollups import classify_risk, compute_risk_flags

AS_OF = date(2025, 6, 30)


@pytest.mark.parametrize(
    "days_ago, expected_level, expected_reason",
    [
        (200, RiskLevel.HIGH, "No payments in >180 days"),
        (181, RiskLevel.HIGH, "No payments in >180 days"),
        (180, RiskLevel.MEDIUM, "No payments in >90 days"),
        (100, RiskLevel.MEDIUM, "No payments in >90 days"),
        (90, RiskLevel.LOW, "Recent payer"),
        (30, RiskLevel.LOW, "Recent payer"),
        (0, RiskLevel.LOW, "Recent payer"),
    ],
)
def test_classify_risk_thresholds(days_ago, expected_level, expected_reason):
    level, reason = classify_risk(AS_OF - timedelta(days=days_ago), AS_OF)

    assert level == expected_level
    assert reason == expected_reason


def test_never_paid_is_high():
    assert classify_risk(None, AS_OF) == (RiskLevel.HIGH, "No payment history")


def test_custom_thresholds():
    level, reason = classify_risk(AS_OF - timedelta(days=40), AS_OF, medium_after_days=30, high_after_days=60)

    assert level == RiskLevel.MEDIUM
    assert reason == "No payments in >30 days"


def test_compute_risk_flags(sample_snapshot, now):
    value = customer_value(sample_snapshot.customers, sample_snapshot.payments)

    flags = {flag["customer_id"]: flag for flag in compute_risk_flags(value, now)}

    assert flags[1]["risk_level"] == RiskLevel.LOW
    assert flags[2]["risk_level"] == RiskLevel.HIGH
    assert flags[3]["risk_level"] == RiskLevel.MEDIUM
    assert flags[4]["risk_level"] == RiskLevel.HIGH
    assert flags[4]["reason"] == "No payment history"
    assert all(flag["updated_at"] == now for flag in flags.values())


def test_every_customer_gets_exactly_one_flag(sample_snapshot, now):
    value = customer_value(sample_snapshot.customers, sample_snapshot.payments)

    flags = compute_risk_flags(value, now)

    assert sorted(flag["customer_id"] for flag in flags) == [1, 2, 3, 4]
