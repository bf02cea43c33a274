"""
Discount Classifier

Tags each line item against its product-month price baseline:
- is_discounted: price strictly below (1 - threshold) x median
- is_low_confidence: baseline built from fewer than min_baseline_n items
- is_trusted_discount: discounted and the baseline is large enough

Items whose product-month has no baseline keep null baseline fields and all
flags false. The guarded variant first drops items outside the parameter
window or below the price/freight floors.
"""

import polars as pl
import structlog

from pricing_promo.config import PipelineParameters
from pricing_promo.exceptions import DataQualityError
from pricing_promo.schemas import ENRICHED_ITEM_SCHEMA, conform
from .baseline import BASELINE_KEY
from .cleaners import in_window_expr, sane_item_expr

logger = structlog.get_logger(__name__)

# Float noise in (1 - threshold) * median must not move the strict boundary
CEILING_DECIMALS = 6


def discount_ceiling_expr(threshold: float) -> pl.Expr:
    """Price below which an item counts as discounted for ``threshold``"""
    return (pl.col("median_price") * (1 - threshold)).round(CEILING_DECIMALS)


def discount_flag_exprs(threshold: float, min_baseline_n: int) -> list:
    """Flag expressions for a joined item/baseline frame"""
    has_baseline = pl.col("median_price").is_not_null()
    below_ceiling = (pl.col("price") < discount_ceiling_expr(threshold)).fill_null(False)
    confident = pl.col("sample_size") >= min_baseline_n

    return [
        (has_baseline & below_ceiling).alias("is_discounted"),
        (has_baseline & ~confident).fill_null(False).alias("is_low_confidence"),
        (has_baseline & confident & below_ceiling).fill_null(False).alias("is_trusted_discount"),
    ]


def join_baselines(line_items: pl.DataFrame, baselines: pl.DataFrame) -> pl.DataFrame:
    """Left join line items to their (product_id, period) baseline"""
    return line_items.join(
        baselines.select(BASELINE_KEY + ["median_price", "sample_size"]),
        on=BASELINE_KEY,
        how="left",
    )


def classify_line_items(
    line_items: pl.DataFrame,
    baselines: pl.DataFrame,
    params: PipelineParameters,
) -> pl.DataFrame:
    """
    Enrich every line item with its baseline and discount flags.

    Args:
        line_items: LineItem frame
        baselines: PriceBaseline frame from ``estimate_price_baselines``
        params: Run parameter snapshot

    Returns:
        EnrichedLineItem frame, one row per input line item

    Raises:
        DataQualityError: If a line item has no purchase period
    """
    missing_period = line_items.filter(pl.col("period").is_null())
    if missing_period.height:
        first = missing_period.sort(["order_id", "order_item_id"]).row(0, named=True)
        raise DataQualityError(
            "Line item without purchase timestamp reached the classifier",
            record_key=(first["order_id"], first["order_item_id"]),
        )

    enriched = join_baselines(line_items, baselines).with_columns(
        discount_flag_exprs(params.discount_threshold, params.min_baseline_n)
    )
    enriched = conform(enriched, ENRICHED_ITEM_SCHEMA).sort(["order_id", "order_item_id"])

    logger.info(
        "Classified line items",
        rows=enriched.height,
        discounted=int(enriched["is_discounted"].sum()),
        trusted_discounts=int(enriched["is_trusted_discount"].sum()),
        threshold=params.discount_threshold,
    )
    return enriched


def classify_line_items_guarded(
    line_items: pl.DataFrame,
    baselines: pl.DataFrame,
    params: PipelineParameters,
) -> pl.DataFrame:
    """
    Classify only items inside the window that pass the price/freight floors.

    Items failing the guards are absent from the result rather than flagged.
    Baselines are not recomputed: the guards select which items are
    classified, not which items define the reference price.
    """
    eligible = line_items.filter(in_window_expr(params) & sane_item_expr(params))

    logger.info(
        "Applied classifier guards",
        eligible=eligible.height,
        excluded=line_items.height - eligible.height,
        window_start=params.window_start,
        window_end=params.window_end,
    )
    return classify_line_items(eligible, baselines, params)
