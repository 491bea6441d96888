"""
Unit Tests - Derived Views and KPIs
"""
from datetime import date
from decimal import Decimal

import polars as pl

from telecom_analytics.analytics.kpis import (
    _months_back,
    active_connection_counts,
    arpu_by_plan_type,
    at_risk_customers,
    compute_kpi_summary,
    customers_by_type_and_status,
    monthly_revenue_trend,
    problem_sims,
    top_cities_by_revenue,
    top_customers_by_revenue,
    top_plans_by_revenue,
    total_active_customers,
    total_revenue,
)
from telecom_analytics.pipeline.aggregations import (
    compute_views,
    customer_overview,
    customer_value,
    fiber_subscriptions,
    mobile_subscriptions,
    plan_performance,
)
from telecom_analytics.pipeline.rollups import compute_monthly_revenue
from telecom_analytics.sources.schemas import payments_frame, sims_frame

AS_OF = date(2025, 6, 30)


def by_id(df: pl.DataFrame, key: str) -> dict:
    return {row[key]: row for row in df.iter_rows(named=True)}


class TestCustomerOverview:
    """Tests for the customer overview view"""

    def test_counts_connections(self, sample_snapshot):
        overview = by_id(customer_overview(
            sample_snapshot.customers,
            sample_snapshot.sim_connections,
            sample_snapshot.fiber_connections,
        ), "customer_id")

        assert (overview[2]["total_sim_connections"], overview[2]["total_fiber_connections"]) == (1, 0)
        assert (overview[3]["total_sim_connections"], overview[3]["total_fiber_connections"]) == (1, 1)
        assert overview[3]["customer_status"] == "Inactive"

    def test_customer_without_connections_has_zero_counts(self, sample_snapshot):
        overview = by_id(customer_overview(
            sample_snapshot.customers,
            sample_snapshot.sim_connections,
            sample_snapshot.fiber_connections,
        ), "customer_id")

        assert len(overview) == 4
        assert overview[1]["total_sim_connections"] == 0
        assert overview[1]["total_fiber_connections"] == 0


class TestSubscriptionViews:
    """Tests for the mobile and fiber subscription views"""

    def test_mobile_subscriptions_join_customer_and_plan(self, sample_snapshot):
        view = mobile_subscriptions(
            sample_snapshot.sim_connections, sample_snapshot.customers, sample_snapshot.plans
        )

        assert sorted(view["sim_id"].to_list()) == [100, 101, 102]
        row = by_id(view, "sim_id")[101]
        assert row["full_name"] == "Meera Iyer"
        assert row["plan_name"] == "Jio 299"
        assert row["sim_status"] == "Expired"

    def test_mobile_subscriptions_drop_orphans(self, sample_snapshot):
        sims = pl.concat([
            sample_snapshot.sim_connections,
            sims_frame([
                {"sim_id": 900, "sim_number": "X", "customer_id": 99, "plan_id": 10, "status": "Active"},
                {"sim_id": 901, "sim_number": "Y", "customer_id": 2, "plan_id": 77, "status": "Active"},
            ]),
        ])

        view = mobile_subscriptions(sims, sample_snapshot.customers, sample_snapshot.plans)

        assert 900 not in view["sim_id"].to_list()
        assert 901 not in view["sim_id"].to_list()

    def test_fiber_subscriptions(self, sample_snapshot):
        view = fiber_subscriptions(
            sample_snapshot.fiber_connections, sample_snapshot.customers, sample_snapshot.plans
        )

        assert view.height == 1
        row = view.row(0, named=True)
        assert row["fiber_id"] == 200
        assert row["plan_name"] == "Fiber 100"
        assert row["fiber_status"] == "Active"


class TestCustomerValue:
    """Tests for the customer value view"""

    def test_counts_success_only(self, sample_snapshot):
        value = by_id(customer_value(sample_snapshot.customers, sample_snapshot.payments), "customer_id")

        assert value[1]["successful_payment_count"] == 1
        assert value[1]["total_revenue"] == Decimal("100.00")
        assert value[1]["first_payment_date"] == date(2025, 6, 1)
        assert value[1]["last_payment_date"] == date(2025, 6, 1)

    def test_customer_without_successful_payments(self, sample_snapshot):
        value = by_id(customer_value(sample_snapshot.customers, sample_snapshot.payments), "customer_id")

        assert value[4]["successful_payment_count"] == 0
        assert value[4]["total_revenue"] == Decimal("0")
        assert value[4]["first_payment_date"] is None
        assert value[4]["last_payment_date"] is None

    def test_revenue_is_conserved(self, sample_snapshot):
        value = customer_value(sample_snapshot.customers, sample_snapshot.payments)

        assert sum(value["total_revenue"].to_list(), Decimal("0")) == total_revenue(sample_snapshot.payments)

    def test_empty_payments(self, sample_snapshot):
        value = customer_value(sample_snapshot.customers, payments_frame())

        assert value.height == 4
        assert value["successful_payment_count"].to_list() == [0, 0, 0, 0]
        assert all(v == Decimal("0") for v in value["total_revenue"].to_list())


class TestPlanPerformance:
    """Tests for the plan performance view"""

    def test_aggregates_per_plan(self, sample_snapshot):
        performance = by_id(plan_performance(sample_snapshot.plans, sample_snapshot.payments), "plan_id")

        assert performance[10]["unique_paying_customers"] == 2
        assert performance[10]["successful_transaction_count"] == 2
        assert performance[10]["total_revenue"] == Decimal("300.00")
        assert performance[20]["total_revenue"] == Decimal("300.00")

    def test_plan_without_payments_is_kept(self, sample_snapshot):
        performance = by_id(plan_performance(sample_snapshot.plans, sample_snapshot.payments), "plan_id")

        assert performance[30]["unique_paying_customers"] == 0
        assert performance[30]["successful_transaction_count"] == 0
        assert performance[30]["total_revenue"] == Decimal("0")

    def test_compute_views_row_counts(self, sample_snapshot):
        views = compute_views(sample_snapshot)

        assert views.row_counts() == {
            "customer_overview": 4,
            "mobile_subscriptions": 3,
            "fiber_subscriptions": 1,
            "customer_value": 4,
            "plan_performance": 3,
        }


class TestMonthlyRevenue:
    """Tests for the monthly revenue rollup"""

    def test_months_with_any_payment(self, sample_snapshot):
        monthly = compute_monthly_revenue(sample_snapshot.payments)

        assert monthly["year_month"].to_list() == ["2024-12", "2025-03", "2025-05", "2025-06"]
        assert monthly["total_revenue"].to_list() == [
            Decimal("200.00"), Decimal("300.00"), Decimal("0.00"), Decimal("100.00"),
        ]
        assert monthly["successful_transactions"].to_list() == [1, 1, 0, 1]

    def test_undated_payments_are_excluded(self):
        payments = payments_frame([
            {"payment_id": 1, "customer_id": 1, "payment_date": None,
             "amount_paid": Decimal("10.00"), "payment_status": "Success"},
        ])

        assert compute_monthly_revenue(payments).height == 0

    def test_rollup_matches_view_totals(self, sample_snapshot):
        monthly = compute_monthly_revenue(sample_snapshot.payments)

        assert sum(monthly["total_revenue"].to_list(), Decimal("0")) == Decimal("600.00")


class TestKpis:
    """Tests for management KPIs"""

    def test_counts(self, sample_snapshot):
        assert total_active_customers(sample_snapshot.customers) == 3
        assert active_connection_counts(
            sample_snapshot.sim_connections, sample_snapshot.fiber_connections
        ) == {"active_sims": 1, "active_fibers": 1}
        assert problem_sims(sample_snapshot.sim_connections)["sim_id"].to_list() == [101, 102]

    def test_customers_by_type_and_status(self, sample_snapshot):
        rows = customers_by_type_and_status(sample_snapshot.customers).to_dicts()

        assert rows == [
            {"customer_type": "Postpaid", "status": "Active", "customer_count": 1},
            {"customer_type": "Postpaid", "status": "Inactive", "customer_count": 1},
            {"customer_type": "Prepaid", "status": "Active", "customer_count": 2},
        ]

    def test_total_revenue(self, sample_snapshot):
        assert total_revenue(sample_snapshot.payments) == Decimal("600.00")
        assert total_revenue(payments_frame()) == Decimal("0.00")

    def test_months_back_clamps_to_month_end(self):
        assert _months_back(date(2025, 3, 31), 1) == date(2025, 2, 28)
        assert _months_back(date(2025, 1, 15), 2) == date(2024, 11, 15)

    def test_monthly_revenue_trend_window(self, sample_snapshot):
        full = monthly_revenue_trend(sample_snapshot.payments, AS_OF, months=12)
        recent = monthly_revenue_trend(sample_snapshot.payments, AS_OF, months=3)

        assert full["year_month"].to_list() == ["2024-12", "2025-03", "2025-05", "2025-06"]
        assert recent["year_month"].to_list() == ["2025-05", "2025-06"]

    def test_top_cities(self, sample_snapshot):
        cities = top_cities_by_revenue(sample_snapshot.customers, sample_snapshot.payments, limit=2)

        assert cities["city"].to_list() == ["Chennai", "Delhi"]
        assert cities["city_revenue"].to_list() == [Decimal("300.00"), Decimal("200.00")]

    def test_at_risk_customers(self, sample_snapshot):
        value = customer_value(sample_snapshot.customers, sample_snapshot.payments)

        at_risk = at_risk_customers(value, AS_OF, inactive_days=90)

        # Never paid first, then oldest payment
        assert at_risk["customer_id"].to_list() == [4, 2, 3]

    def test_top_customers_and_plans(self, sample_snapshot):
        value = customer_value(sample_snapshot.customers, sample_snapshot.payments)
        performance = plan_performance(sample_snapshot.plans, sample_snapshot.payments)

        assert top_customers_by_revenue(value, limit=2)["customer_id"].to_list() == [3, 2]
        assert top_plans_by_revenue(performance, limit=2)["plan_id"].to_list() == [10, 20]

    def test_arpu_by_plan_type(self, sample_snapshot):
        rows = {row["plan_type"]: row for row in arpu_by_plan_type(sample_snapshot.plans, sample_snapshot.payments)}

        assert rows["Mobile"]["revenue"] == Decimal("300.00")
        assert rows["Mobile"]["paying_customers"] == 2
        assert rows["Mobile"]["arpu"] == Decimal("150.00")
        assert rows["Fiber"]["arpu"] == Decimal("300.00")
        assert rows["Broadband"]["paying_customers"] == 0
        assert rows["Broadband"]["arpu"] is None

    def test_kpi_summary(self, sample_snapshot):
        value = customer_value(sample_snapshot.customers, sample_snapshot.payments)

        summary = compute_kpi_summary(sample_snapshot, value, AS_OF, trend_months=12, top_n=5)

        assert summary.total_active_customers == 3
        assert summary.active_sims == 1
        assert summary.active_fibers == 1
        assert summary.total_revenue == Decimal("600.00")
        assert len(summary.monthly_revenue_trend) == 4
        assert summary.at_risk_customer_count == 3
        assert summary.problem_sim_count == 2

    def test_kpi_summary_rankings_and_segments(self, sample_snapshot):
        value = customer_value(sample_snapshot.customers, sample_snapshot.payments)

        summary = compute_kpi_summary(sample_snapshot, value, AS_OF, top_n=5)

        segments = {(row["city"], row["customer_type"]): row["customer_count"]
                    for row in summary.customers_by_city_and_type}
        assert len(segments) == 4
        assert segments[("Delhi", "Postpaid")] == 1
        assert segments[("Delhi", "Prepaid")] == 1
        assert [row["customer_id"] for row in summary.top_customers] == [3, 2, 1, 4]
        assert summary.top_customers[-1]["total_revenue"] == Decimal("0.00")
        assert [row["plan_id"] for row in summary.top_plans] == [10, 20, 30]
        assert set(summary.top_plans[0]) == {
            "plan_id", "plan_name", "plan_type", "unique_paying_customers", "total_revenue",
        }
