"""
Order Aggregator

Rolls enriched line items up to exactly one KPI row per order and attaches the
order's independently recorded payments.
"""

import polars as pl
import structlog

from pricing_promo.exceptions import CardinalityError
from pricing_promo.schemas import ORDER_KPI_SCHEMA, conform

logger = structlog.get_logger(__name__)

# Sums of cent amounts are normalised to this many decimals so reruns match bit for bit
MONEY_DECIMALS = 6


def summarize_payments(payments: pl.DataFrame) -> pl.DataFrame:
    """Total recorded payment per order (installments and vouchers summed)"""
    return (
        payments.group_by("order_id")
        .agg(pl.col("payment_value").sum().alias("payments_total"))
        .sort("order_id")
    )


def aggregate_orders(
    enriched: pl.DataFrame,
    orders: pl.DataFrame,
    payments: pl.DataFrame,
) -> pl.DataFrame:
    """
    Build the OrderKPI frame.

    Args:
        enriched: EnrichedLineItem frame
        orders: Raw orders (customer_id, order_purchase_timestamp)
        payments: Raw payment records, several rows per order allowed

    Returns:
        OrderKPI frame sorted by order_id

    Raises:
        CardinalityError: If the result does not hold exactly one row per
            order present in ``enriched``
    """
    item_totals = enriched.group_by("order_id").agg([
        pl.col("price").sum().alias("items_revenue"),
        pl.col("freight_value").sum().alias("freight_total"),
        pl.col("is_discounted").any().alias("any_discount"),
        pl.col("is_trusted_discount").any().alias("any_trusted_discount"),
    ])

    kpis = (
        item_totals
        .join(
            orders.select(["order_id", "customer_id", "order_purchase_timestamp"]),
            on="order_id",
            how="inner",
        )
        .join(summarize_payments(payments), on="order_id", how="left")
        .with_columns([
            pl.col("items_revenue").round(MONEY_DECIMALS),
            pl.col("freight_total").round(MONEY_DECIMALS),
            pl.col("payments_total").fill_null(0.0).round(MONEY_DECIMALS).alias("payment_value"),
            pl.col("order_purchase_timestamp").dt.strftime("%Y-%m").alias("period"),
        ])
        .with_columns([
            (pl.col("items_revenue") - pl.col("freight_total")).round(MONEY_DECIMALS).alias("margin_proxy"),
            (pl.col("freight_total") == 0).alias("free_shipping"),
        ])
    )
    kpis = conform(kpis, ORDER_KPI_SCHEMA).sort("order_id")

    check_one_row_per_order(kpis, enriched)

    logger.info(
        "Aggregated order KPIs",
        orders=kpis.height,
        with_payments=kpis.join(payments.select("order_id").unique(), on="order_id", how="semi").height,
    )
    return kpis


def check_one_row_per_order(kpis: pl.DataFrame, enriched: pl.DataFrame) -> None:
    """
    Enforce the one-to-one order cardinality between items and KPIs.

    Raises:
        CardinalityError: On duplicate KPI rows or orders missing a KPI row
    """
    duplicate_rows = kpis.height - kpis["order_id"].n_unique()
    if duplicate_rows:
        raise CardinalityError(
            f"Order KPI frame has {duplicate_rows} duplicate order rows",
            details={"duplicate_rows": duplicate_rows},
        )

    expected = enriched["order_id"].n_unique()
    if kpis.height != expected:
        raise CardinalityError(
            f"Order KPI frame has {kpis.height} rows for {expected} orders with line items",
            details={"kpi_rows": kpis.height, "orders_in_items": expected},
        )
