"""
BI Rollups

Aggregates over the clean order KPIs and the guarded enriched items, shaped
for dashboard consumption:
- Monthly overview (orders, revenue, freight, payments, AOV, margin/order)
- Monthly promo split (trusted-discount orders vs the rest)
- Category and SKU rollup with minimum-support floors

All money outputs are rounded to cents; rows are sorted by their keys.
"""

import polars as pl
import structlog

from pricing_promo.config import PipelineParameters
from pricing_promo.schemas import UNKNOWN_CATEGORY

logger = structlog.get_logger(__name__)

CENTS = 2


def _per_order_metrics() -> list:
    return [
        (pl.col("items_revenue_sum") / pl.col("orders")).round(CENTS).alias("aov_items"),
        (pl.col("margin_sum") / pl.col("orders")).round(CENTS).alias("margin_per_order"),
    ]


def monthly_overview(clean_kpis: pl.DataFrame) -> pl.DataFrame:
    """
    One row per period of clean orders.

    Columns: period, orders, items_revenue, freight_total, payment_value,
    aov_items, margin_per_order
    """
    overview = (
        clean_kpis.group_by("period")
        .agg([
            pl.len().cast(pl.Int64).alias("orders"),
            pl.col("items_revenue").sum().alias("items_revenue_sum"),
            pl.col("freight_total").sum().alias("freight_total"),
            pl.col("payment_value").sum().alias("payment_value"),
            pl.col("margin_proxy").sum().alias("margin_sum"),
        ])
        .with_columns(_per_order_metrics())
        .select([
            "period",
            "orders",
            pl.col("items_revenue_sum").round(CENTS).alias("items_revenue"),
            pl.col("freight_total").round(CENTS),
            pl.col("payment_value").round(CENTS),
            "aov_items",
            "margin_per_order",
        ])
        .sort("period")
    )

    logger.info("Built monthly overview", periods=overview.height)
    return overview


def monthly_promo_split(clean_kpis: pl.DataFrame) -> pl.DataFrame:
    """
    Per period, clean orders split by the trusted-discount flag.

    ``order_share_pct`` is each split's share of the period's order count.
    """
    split = (
        clean_kpis.group_by(["period", "any_trusted_discount"])
        .agg([
            pl.len().cast(pl.Int64).alias("orders"),
            pl.col("items_revenue").sum().alias("items_revenue_sum"),
            pl.col("margin_proxy").sum().alias("margin_sum"),
        ])
        .with_columns(_per_order_metrics())
        .with_columns(
            (100 * pl.col("orders") / pl.col("orders").sum().over("period"))
            .round(CENTS)
            .alias("order_share_pct")
        )
        .select([
            "period",
            pl.col("any_trusted_discount").alias("trusted_flag"),
            "orders",
            "order_share_pct",
            "aov_items",
            "margin_per_order",
        ])
        .sort(["period", "trusted_flag"])
    )

    logger.info("Built monthly promo split", rows=split.height)
    return split


def with_category(items: pl.DataFrame, products: pl.DataFrame) -> pl.DataFrame:
    """Attach product category, mapping missing ones to ``(unknown)``"""
    return items.join(
        products.select(["product_id", "product_category_name"]),
        on="product_id",
        how="left",
    ).with_columns(
        pl.col("product_category_name").fill_null(UNKNOWN_CATEGORY).alias("category")
    )


def category_sku_rollup(
    enriched: pl.DataFrame,
    clean_kpis: pl.DataFrame,
    products: pl.DataFrame,
    params: PipelineParameters,
) -> pl.DataFrame:
    """
    Two-level rollup of line items belonging to clean orders.

    Category rows need at least ``category_min_lines`` contributing lines and
    SKU rows at least ``sku_min_lines``; smaller groups are suppressed rather
    than zero-filled.

    Returns:
        Frame with columns level, category, product_id (null on category
        rows), line_count, order_count, items_revenue, margin_proxy
    """
    lines = with_category(
        enriched.join(clean_kpis.select("order_id"), on="order_id", how="semi"),
        products,
    )

    measures = [
        pl.len().cast(pl.Int64).alias("line_count"),
        pl.col("order_id").n_unique().cast(pl.Int64).alias("order_count"),
        pl.col("price").sum().round(CENTS).alias("items_revenue"),
        (pl.col("price") - pl.col("freight_value")).sum().round(CENTS).alias("margin_proxy"),
    ]

    categories = (
        lines.group_by("category")
        .agg(measures)
        .filter(pl.col("line_count") >= params.category_min_lines)
        .select([
            pl.lit("category").alias("level"),
            "category",
            pl.lit(None, dtype=pl.Utf8).alias("product_id"),
            "line_count",
            "order_count",
            "items_revenue",
            "margin_proxy",
        ])
    )

    skus = (
        lines.group_by(["category", "product_id"])
        .agg(measures)
        .filter(pl.col("line_count") >= params.sku_min_lines)
        .select([
            pl.lit("sku").alias("level"),
            "category",
            "product_id",
            "line_count",
            "order_count",
            "items_revenue",
            "margin_proxy",
        ])
    )

    rollup = pl.concat([categories, skus], how="vertical").sort(
        ["level", "category", "product_id"], nulls_last=False
    )

    logger.info(
        "Built category/SKU rollup",
        categories=categories.height,
        skus=skus.height,
        category_floor=params.category_min_lines,
        sku_floor=params.sku_min_lines,
    )
    return rollup
