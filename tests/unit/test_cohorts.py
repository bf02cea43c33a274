"""
Unit Tests - Cohort & Retention Reporting
"""
import pytest
import polars as pl

from pricing_promo.config import PipelineParameters
from pricing_promo.reporting.cohorts import (
    build_cohort_activity,
    cohort_promo_split,
    retention_curve,
    retention_curve_filtered,
    revenue_retention,
    time_to_second_order,
)


@pytest.fixture
def cohort_kpis(make_kpis):
    """Person A orders in Jan, Mar and Mar; B in Jan only; C in Feb and Mar"""
    return make_kpis([
        {"order_id": "a1", "customer_id": "ca1", "timestamp": "2017-01-15 10:00:00", "items_revenue": 100.0, "any_trusted_discount": True},
        {"order_id": "a2", "customer_id": "ca2", "timestamp": "2017-03-20 10:00:00", "items_revenue": 40.0},
        {"order_id": "a3", "customer_id": "ca3", "timestamp": "2017-03-25 10:00:00", "items_revenue": 60.0},
        {"order_id": "b1", "customer_id": "cb1", "timestamp": "2017-01-31 10:00:00", "items_revenue": 80.0},
        {"order_id": "c1", "customer_id": "cc1", "timestamp": "2017-02-28 10:00:00", "items_revenue": 30.0},
        {"order_id": "c2", "customer_id": "cc2", "timestamp": "2017-03-27 10:00:00", "items_revenue": 30.0},
    ])


@pytest.fixture
def cohort_customers(make_customers):
    """Order-scoped customer ids mapped to three people"""
    return make_customers([
        ("ca1", "A"), ("ca2", "A"), ("ca3", "A"),
        ("cb1", "B"),
        ("cc1", "C"), ("cc2", "C"),
    ])


class TestBuildCohortActivity:
    """Tests for build_cohort_activity"""

    def test_cohort_and_offsets(self, cohort_kpis, cohort_customers):
        """Test cohort is the first order month per person and offsets count months"""
        result = build_cohort_activity(cohort_kpis, cohort_customers)

        a = result.filter(pl.col("customer_unique_id") == "A")
        assert a["cohort_period"].unique().to_list() == ["2017-01"]
        assert a["month_offset"].to_list() == [0, 2, 2]

        c = result.filter(pl.col("customer_unique_id") == "C")
        assert c["cohort_period"].unique().to_list() == ["2017-02"]
        assert c["month_offset"].to_list() == [0, 1]

    def test_offsets_cross_year_boundary(self, make_kpis, make_customers):
        """Test December to February is two months"""
        kpis = make_kpis([
            {"order_id": "x1", "customer_id": "c1", "timestamp": "2016-12-30 10:00:00"},
            {"order_id": "x2", "customer_id": "c2", "timestamp": "2017-02-01 10:00:00"},
        ])
        customers = make_customers([("c1", "X"), ("c2", "X")])

        result = build_cohort_activity(kpis, customers)

        assert result["month_offset"].to_list() == [0, 2]


class TestRetentionCurve:
    """Tests for retention_curve and retention_curve_filtered"""

    def test_retention_pct(self, cohort_kpis, cohort_customers):
        """Test retention is active customers over the offset-0 cohort size"""
        curve = retention_curve(build_cohort_activity(cohort_kpis, cohort_customers))

        assert curve.rows() == [
            ("2017-01", 0, 2, 2, 100.0),
            ("2017-01", 2, 2, 1, 50.0),
            ("2017-02", 0, 1, 1, 100.0),
            ("2017-02", 1, 1, 1, 100.0),
        ]

    def test_filtered_view_drops_small_cohorts(self, cohort_kpis, cohort_customers):
        """Test cohorts below min_cohort_size are removed entirely"""
        curve = retention_curve(build_cohort_activity(cohort_kpis, cohort_customers))

        result = retention_curve_filtered(curve, PipelineParameters(min_cohort_size=2))

        assert result["cohort_period"].unique().to_list() == ["2017-01"]
        assert result.height == 2


class TestRevenueRetention:
    """Tests for revenue_retention"""

    def test_revenue_per_active_customer(self, cohort_kpis, cohort_customers):
        """Test revenue totals and per-customer averages by offset"""
        result = revenue_retention(build_cohort_activity(cohort_kpis, cohort_customers))

        jan = result.filter(pl.col("cohort_period") == "2017-01")
        assert jan.select(["month_offset", "total_revenue", "active_customers", "revenue_per_active_customer"]).rows() == [
            (0, 180.0, 2, 90.0),
            (2, 100.0, 1, 100.0),
        ]


class TestCohortPromoSplit:
    """Tests for cohort_promo_split"""

    def test_first_order_decides(self, cohort_kpis, cohort_customers):
        """Test promo_acquired comes from each person's first order only"""
        result = cohort_promo_split(cohort_kpis, cohort_customers)

        assert dict(zip(result["customer_unique_id"].to_list(), result["promo_acquired"].to_list())) == {
            "A": True,
            "B": False,
            "C": False,
        }


class TestTimeToSecondOrder:
    """Tests for time_to_second_order"""

    def test_whole_months(self, cohort_kpis, cohort_customers):
        """Test completed calendar months between first and second order"""
        result = time_to_second_order(cohort_kpis, cohort_customers)

        months = dict(zip(result["customer_unique_id"].to_list(), result["months_to_second_order"].to_list()))
        # A: Jan 15 -> Mar 20 is two months; C: Feb 28 -> Mar 27 is not yet one
        assert months == {"A": 2, "C": 0}

    def test_single_order_customers_are_absent(self, cohort_kpis, cohort_customers):
        """Test customers with one order have no row"""
        result = time_to_second_order(cohort_kpis, cohort_customers)

        assert "B" not in result["customer_unique_id"].to_list()
