"""
Cohort & Retention Reporting

Customers are grouped by the month of their first order (their cohort) and
followed across later months:
- Customer-month activity with month offsets
- Retention curve and its small-cohort filtered view
- Revenue per active customer by offset
- Promo-acquired flag from each customer's first order
- Whole months between first and second order
"""

import polars as pl
import structlog

from pricing_promo.config import PipelineParameters
from pricing_promo.schemas import COHORT_ACTIVITY_SCHEMA, conform, period_index_expr

logger = structlog.get_logger(__name__)


def _with_unique_customer(kpis: pl.DataFrame, customers: pl.DataFrame) -> pl.DataFrame:
    """Map order-scoped customer_id to the person-level customer_unique_id"""
    return kpis.join(
        customers.select(["customer_id", "customer_unique_id"]),
        on="customer_id",
        how="inner",
    )


def _ranked_orders(kpis: pl.DataFrame, customers: pl.DataFrame) -> pl.DataFrame:
    """Orders numbered 1..n per unique customer by purchase time (ties by order_id)"""
    return (
        _with_unique_customer(kpis, customers)
        .sort(["customer_unique_id", "order_purchase_timestamp", "order_id"])
        .with_columns(
            pl.int_range(1, pl.len() + 1).over("customer_unique_id").alias("order_rank")
        )
    )


def build_cohort_activity(kpis: pl.DataFrame, customers: pl.DataFrame) -> pl.DataFrame:
    """
    One row per order with the customer's cohort and month offset.

    Args:
        kpis: Order KPI frame (clean or full)
        customers: Customers source table

    Returns:
        CohortRecord frame (see ``schemas.COHORT_ACTIVITY_SCHEMA``)
    """
    orders = _with_unique_customer(kpis, customers)

    activity = (
        orders.with_columns([
            pl.col("period").min().over("customer_unique_id").alias("cohort_period"),
            pl.col("period").alias("order_month"),
        ])
        .with_columns(
            (period_index_expr("order_month") - period_index_expr("cohort_period")).alias("month_offset")
        )
        .sort(["cohort_period", "customer_unique_id", "order_month", "order_id"])
    )
    activity = conform(activity, COHORT_ACTIVITY_SCHEMA)

    logger.info(
        "Built cohort activity",
        rows=activity.height,
        customers=activity["customer_unique_id"].n_unique(),
    )
    return activity


def retention_curve(activity: pl.DataFrame) -> pl.DataFrame:
    """
    Share of each cohort active at every month offset.

    retention_pct(k) = distinct customers active at offset k divided by the
    distinct customers at offset 0, in percent.
    """
    agg = activity.group_by(["cohort_period", "month_offset"]).agg(
        pl.col("customer_unique_id").n_unique().cast(pl.Int64).alias("active_customers")
    )
    sizes = agg.filter(pl.col("month_offset") == 0).select([
        "cohort_period",
        pl.col("active_customers").alias("cohort_size"),
    ])

    curve = (
        agg.join(sizes, on="cohort_period", how="inner")
        .with_columns(
            (100 * pl.col("active_customers") / pl.col("cohort_size")).round(2).alias("retention_pct")
        )
        .select(["cohort_period", "month_offset", "cohort_size", "active_customers", "retention_pct"])
        .sort(["cohort_period", "month_offset"])
    )
    return curve


def retention_curve_filtered(curve: pl.DataFrame, params: PipelineParameters) -> pl.DataFrame:
    """Retention curve without cohorts smaller than ``min_cohort_size`` at offset 0"""
    filtered = curve.filter(pl.col("cohort_size") >= params.min_cohort_size)

    logger.info(
        "Filtered retention curve",
        cohorts_kept=filtered["cohort_period"].n_unique(),
        cohorts_dropped=curve["cohort_period"].n_unique() - filtered["cohort_period"].n_unique(),
        min_cohort_size=params.min_cohort_size,
    )
    return filtered


def revenue_retention(activity: pl.DataFrame) -> pl.DataFrame:
    """Total revenue and revenue per active customer by cohort and offset"""
    return (
        activity.group_by(["cohort_period", "month_offset"])
        .agg([
            pl.col("items_revenue").sum().alias("total_revenue"),
            pl.col("customer_unique_id").n_unique().cast(pl.Int64).alias("active_customers"),
        ])
        .with_columns([
            pl.col("total_revenue").round(2),
            (pl.col("total_revenue") / pl.col("active_customers")).round(2).alias("revenue_per_active_customer"),
        ])
        .sort(["cohort_period", "month_offset"])
    )


def cohort_promo_split(kpis: pl.DataFrame, customers: pl.DataFrame) -> pl.DataFrame:
    """
    Whether each customer was acquired on a trusted-discount order.

    Returns:
        Frame with customer_unique_id, cohort_period, promo_acquired
    """
    first_orders = _ranked_orders(kpis, customers).filter(pl.col("order_rank") == 1)

    return (
        first_orders.select([
            "customer_unique_id",
            pl.col("period").alias("cohort_period"),
            pl.col("any_trusted_discount").fill_null(False).alias("promo_acquired"),
        ])
        .sort(["cohort_period", "customer_unique_id"])
    )


def time_to_second_order(kpis: pl.DataFrame, customers: pl.DataFrame) -> pl.DataFrame:
    """
    Whole calendar months between a customer's first and second order.

    Only customers with at least two orders appear. A month counts once the
    day of month of the first order has been reached again.
    """
    ranked = _ranked_orders(kpis, customers).filter(pl.col("order_rank") <= 2)

    pairs = (
        ranked.group_by("customer_unique_id")
        .agg([
            pl.col("order_purchase_timestamp").filter(pl.col("order_rank") == 1).first().alias("first_ts"),
            pl.col("order_purchase_timestamp").filter(pl.col("order_rank") == 2).first().alias("second_ts"),
        ])
        .filter(pl.col("second_ts").is_not_null())
    )

    first_date = pl.col("first_ts").dt.date()
    second_date = pl.col("second_ts").dt.date()
    month_diff = (
        (second_date.dt.year() - first_date.dt.year()).cast(pl.Int64) * 12
        + (second_date.dt.month().cast(pl.Int64) - first_date.dt.month().cast(pl.Int64))
    )
    incomplete_month = (second_date.dt.day() < first_date.dt.day()).cast(pl.Int64)

    return (
        pairs.select([
            "customer_unique_id",
            pl.col("first_ts").dt.strftime("%Y-%m").alias("first_order_month"),
            (month_diff - incomplete_month).alias("months_to_second_order"),
        ])
        .sort(["first_order_month", "customer_unique_id"])
    )
