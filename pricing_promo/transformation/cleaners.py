"""
Line Item Assembly and Sanity Checks

Builds the LineItem frame the pricing stages consume and enforces the input
contract before any derived table is computed:
- Order items are joined to their order for the purchase timestamp
- Items without an order are dropped and counted
- Negative money and missing timestamps fail the run
- Duplicate (order_id, order_item_id) keys fail the run
- Duplicate product and customer ids fail the run
- Window and price/freight floors for the guarded views
"""

from dataclasses import dataclass
from typing import Any, Tuple

import polars as pl
import structlog

from pricing_promo.config import PipelineParameters
from pricing_promo.exceptions import CardinalityError, DataQualityError
from pricing_promo.schemas import LINE_ITEM_SCHEMA, conform, period_expr

logger = structlog.get_logger(__name__)

LINE_ITEM_KEY = ["order_id", "order_item_id"]
DIMENSION_KEYS = {"products": "product_id", "customers": "customer_id"}


@dataclass
class AssemblyStats:
    """Statistics from line item assembly"""
    raw_items: int
    orphan_items: int
    line_items: int


def _first_key(df: pl.DataFrame, key: list) -> Tuple[Any, ...]:
    """Key of the first offending row, in key order so errors are reproducible"""
    return tuple(df.sort(key).row(0, named=True)[col] for col in key)


def assemble_line_items(
    order_items: pl.DataFrame,
    orders: pl.DataFrame,
) -> Tuple[pl.DataFrame, AssemblyStats]:
    """
    Join order items to their orders and derive the purchase period.

    Args:
        order_items: Raw order items (one row per order line)
        orders: Raw orders carrying ``order_purchase_timestamp``

    Returns:
        Tuple of (LineItem frame, assembly statistics)

    Raises:
        CardinalityError: If an order_id appears more than once in ``orders``
    """
    duplicated_orders = orders.filter(pl.col("order_id").is_duplicated())
    if duplicated_orders.height:
        raise CardinalityError(
            f"orders has {duplicated_orders['order_id'].n_unique()} duplicated order_id values",
            details={"order_id": duplicated_orders["order_id"].sort()[0]},
        )

    joined = order_items.join(
        orders.select(["order_id", "order_purchase_timestamp"]),
        on="order_id",
        how="inner",
    )
    joined = joined.with_columns(period_expr().alias("period"))
    line_items = conform(joined, LINE_ITEM_SCHEMA).sort(LINE_ITEM_KEY)

    stats = AssemblyStats(
        raw_items=order_items.height,
        orphan_items=order_items.height - line_items.height,
        line_items=line_items.height,
    )

    if stats.orphan_items:
        logger.warning("Dropped order items without a matching order", orphan_items=stats.orphan_items)
    logger.info("Assembled line items", rows=stats.line_items)

    return line_items, stats


def validate_line_items(line_items: pl.DataFrame) -> pl.DataFrame:
    """
    Fail fast on line items the pipeline must not silently coerce.

    Returns the frame unchanged so the call can sit inline in a chain.

    Raises:
        DataQualityError: Null purchase timestamp, negative price or freight
        CardinalityError: Duplicate (order_id, order_item_id)
    """
    checks = [
        (pl.col("order_purchase_timestamp").is_null(), "Line item has no purchase timestamp"),
        (pl.col("price") < 0, "Line item has a negative price"),
        (pl.col("freight_value") < 0, "Line item has a negative freight value"),
    ]
    for condition, message in checks:
        offending = line_items.filter(condition)
        if offending.height:
            key = _first_key(offending, LINE_ITEM_KEY)
            logger.error(message, record_key=key, offending_rows=offending.height)
            raise DataQualityError(message, record_key=key, details={"offending_rows": offending.height})

    duplicates = line_items.filter(pl.struct(LINE_ITEM_KEY).is_duplicated())
    if duplicates.height:
        key = _first_key(duplicates, LINE_ITEM_KEY)
        logger.error("Duplicate line item key", record_key=key, duplicate_rows=duplicates.height)
        raise CardinalityError(
            f"Duplicate (order_id, order_item_id) key {key}",
            details={"duplicate_rows": duplicates.height},
        )

    return line_items


def in_window_expr(params: PipelineParameters, column: str = "period") -> pl.Expr:
    """Inclusive period window predicate"""
    return pl.col(column).is_between(pl.lit(params.window_start), pl.lit(params.window_end), closed="both")


def sane_item_expr(params: PipelineParameters) -> pl.Expr:
    """Price must exceed its floor; freight must reach its floor"""
    return (pl.col("price") > params.min_price) & (pl.col("freight_value") >= params.min_freight)


def items_sane(line_items: pl.DataFrame, params: PipelineParameters) -> pl.DataFrame:
    """Line items passing the price and freight floors"""
    return line_items.filter(sane_item_expr(params))


def orders_in_window(kpis: pl.DataFrame, params: PipelineParameters) -> pl.DataFrame:
    """Order KPIs whose purchase period lies inside the parameter window"""
    return kpis.filter(in_window_expr(params))


def ensure_unique_key(df: pl.DataFrame, key: str, table: str) -> pl.DataFrame:
    """
    Reject a lookup table whose key repeats.

    Rollups and cohorts join products and customers by id; a repeated id
    would fan out every line item or order that references it.

    Raises:
        CardinalityError: If any value of ``key`` appears more than once
    """
    duplicates = df.filter(pl.col(key).is_duplicated())
    if duplicates.height:
        record = _first_key(duplicates, [key])
        logger.error("Duplicate dimension key", table=table, record_key=record, duplicate_rows=duplicates.height)
        raise CardinalityError(
            f"Duplicate {key} {record[0]!r} in {table}",
            details={"table": table, "duplicate_rows": duplicates.height},
        )
    return df
