"""
Price Baseline Estimator

Robust per-product, per-month reference price used for discount detection.
The median of an even-sized group is the mean of its two central prices.
"""

import polars as pl
import structlog

from pricing_promo.exceptions import InvalidInputError
from pricing_promo.schemas import PRICE_BASELINE_SCHEMA, conform

logger = structlog.get_logger(__name__)

BASELINE_KEY = ["product_id", "period"]


def estimate_price_baselines(line_items: pl.DataFrame) -> pl.DataFrame:
    """
    Compute the median price and sample size of every (product, period).

    Items with a null price do not count towards a group; a group with no
    priced items produces no row at all.

    Args:
        line_items: LineItem frame (see ``schemas.LINE_ITEM_SCHEMA``)

    Returns:
        PriceBaseline frame sorted by (product_id, period)

    Raises:
        InvalidInputError: If any priced item is negative
    """
    priced = line_items.filter(pl.col("price").is_not_null())

    negative = priced.filter(pl.col("price") < 0)
    if negative.height:
        first = negative.sort(["order_id", "order_item_id"]).row(0, named=True)
        raise InvalidInputError(
            "Negative price reached the baseline estimator",
            record_key=(first["order_id"], first["order_item_id"]),
            details={"price": first["price"]},
        )

    baselines = (
        priced.group_by(BASELINE_KEY)
        .agg([
            pl.col("price").median().alias("median_price"),
            pl.len().alias("sample_size"),
        ])
        .sort(BASELINE_KEY)
    )
    baselines = conform(baselines, PRICE_BASELINE_SCHEMA)

    logger.info(
        "Estimated price baselines",
        groups=baselines.height,
        priced_items=priced.height,
    )
    return baselines
