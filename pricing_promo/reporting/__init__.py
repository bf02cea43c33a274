"""
Reporting Module
"""
from .cohorts import (
    build_cohort_activity,
    cohort_promo_split,
    retention_curve,
    retention_curve_filtered,
    revenue_retention,
    time_to_second_order,
)
from .diagnostics import (
    baseline_coverage,
    category_discount_rates,
    discount_depth_distribution,
    discount_sensitivity,
    kpi_flag_split,
    monthly_discount_rates,
    reconciliation_gap_summary,
    window_coverage,
)
from .rollups import category_sku_rollup, monthly_overview, monthly_promo_split

__all__ = [
    "build_cohort_activity",
    "cohort_promo_split",
    "retention_curve",
    "retention_curve_filtered",
    "revenue_retention",
    "time_to_second_order",
    "baseline_coverage",
    "category_discount_rates",
    "discount_depth_distribution",
    "discount_sensitivity",
    "kpi_flag_split",
    "monthly_discount_rates",
    "reconciliation_gap_summary",
    "window_coverage",
    "category_sku_rollup",
    "monthly_overview",
    "monthly_promo_split",
]
