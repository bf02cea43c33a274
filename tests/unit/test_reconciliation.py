"""
Unit Tests - Reconciliation & Cleaning Filter
"""
import polars as pl

from pricing_promo.config import PipelineParameters
from pricing_promo.schemas import ORDER_KPI_SCHEMA
from pricing_promo.transformation.reconciliation import ExclusionReason, reconcile_orders


class TestReconcileOrders:
    """Tests for reconcile_orders"""

    def test_half_cent_gap_is_clean(self, make_kpis, params):
        """Test payment 110.005 against 100 + 10 is within tolerance"""
        kpis = make_kpis([{"items_revenue": 100.0, "freight_total": 10.0, "payment_value": 110.005}])

        result = reconcile_orders(kpis, params)

        assert result.clean.height == 1
        assert result.excluded.height == 0

    def test_gap_equal_to_tolerance_is_clean(self, make_kpis, params):
        """Test the tolerance bound is inclusive"""
        kpis = make_kpis([{"items_revenue": 100.0, "freight_total": 10.0, "payment_value": 110.01}])

        result = reconcile_orders(kpis, params)

        assert result.clean.height == 1

    def test_payment_mismatch_is_excluded(self, make_kpis, params):
        """Test a two-cent gap is a payment mismatch"""
        kpis = make_kpis([{"items_revenue": 100.0, "freight_total": 10.0, "payment_value": 110.02}])

        result = reconcile_orders(kpis, params)

        assert result.clean.height == 0
        assert result.excluded["exclusion_reason"].to_list() == [ExclusionReason.PAYMENT_MISMATCH.value]

    def test_exclusion_reasons(self, make_kpis, params):
        """Test each failing condition is reported"""
        kpis = make_kpis([
            {"order_id": "clean", "items_revenue": 50.0, "freight_total": 10.0},
            {"order_id": "neg", "items_revenue": 10.0, "freight_total": 20.0},
            {"order_id": "gap", "items_revenue": 50.0, "freight_total": 10.0, "payment_value": 0.0},
            {"order_id": "both", "items_revenue": 10.0, "freight_total": 20.0, "payment_value": 100.0},
        ])

        result = reconcile_orders(kpis, params)

        assert result.clean["order_id"].to_list() == ["clean"]
        reasons = dict(zip(result.excluded["order_id"].to_list(), result.excluded["exclusion_reason"].to_list()))
        assert reasons == {
            "neg": "negative_margin",
            "gap": "payment_mismatch",
            "both": "negative_margin_and_payment_mismatch",
        }

    def test_zero_margin_is_clean(self, make_kpis, params):
        """Test margin_proxy of exactly zero passes"""
        kpis = make_kpis([{"items_revenue": 10.0, "freight_total": 10.0}])

        result = reconcile_orders(kpis, params)

        assert result.clean.height == 1

    def test_clean_is_subset_with_kpi_shape(self, make_kpis, params):
        """Test clean orders are unchanged input rows and partition the input with the excluded ones"""
        kpis = make_kpis([
            {"order_id": "a"},
            {"order_id": "b", "payment_value": 1.0},
            {"order_id": "c", "items_revenue": 5.0, "freight_total": 6.0},
        ])

        result = reconcile_orders(kpis, params)

        assert dict(result.clean.schema) == ORDER_KPI_SCHEMA
        assert result.clean.equals(kpis.filter(pl.col("order_id") == "a"))
        assert result.clean.height + result.excluded.height == kpis.height
        assert set(result.clean["order_id"]).isdisjoint(result.excluded["order_id"])

    def test_tolerance_is_configurable(self, make_kpis):
        """Test a wider tolerance keeps larger gaps"""
        kpis = make_kpis([{"items_revenue": 100.0, "freight_total": 10.0, "payment_value": 111.0}])

        strict = reconcile_orders(kpis, PipelineParameters())
        loose = reconcile_orders(kpis, PipelineParameters(reconciliation_tolerance=1.0))

        assert strict.clean.height == 0
        assert loose.clean.height == 1
        assert loose.tolerance == 1.0

    def test_summary_counts(self, make_kpis, params):
        """Test monitoring counts add up"""
        kpis = make_kpis([
            {"order_id": "a"},
            {"order_id": "b", "items_revenue": 1.0, "freight_total": 2.0},
            {"order_id": "c", "payment_value": 0.0},
            {"order_id": "d", "payment_value": 0.0},
        ])

        summary = reconcile_orders(kpis, params).summary()

        assert summary == {
            "input_orders": 4,
            "clean_orders": 1,
            "excluded_orders": 3,
            "negative_margin": 1,
            "payment_mismatch": 2,
            "negative_margin_and_payment_mismatch": 0,
        }

    def test_empty_input(self, params):
        """Test empty KPI frames reconcile to empty results"""
        result = reconcile_orders(pl.DataFrame(schema=ORDER_KPI_SCHEMA), params)

        assert result.clean.height == 0
        assert result.excluded.height == 0
        assert result.clean_pct == 100.0
