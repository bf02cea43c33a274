"""
Pricing Diagnostics

Exploratory reports used to sanity-check the discount and reconciliation
policy before numbers reach the dashboards.
"""

from typing import List, Tuple

import polars as pl
import structlog

from pricing_promo.config import PipelineParameters
from pricing_promo.transformation.classifier import discount_flag_exprs, join_baselines
from pricing_promo.transformation.reconciliation import payment_gap_expr
from .rollups import with_category

logger = structlog.get_logger(__name__)

# (label, exclusive upper bound of price / median); the last bucket is open
DEPTH_BUCKETS: List[Tuple[str, float]] = [
    ("<0.80", 0.80),
    ("0.80-0.90", 0.90),
    ("0.90-0.95", 0.95),
    ("0.95-1.00", 1.00),
    ("1.00-1.05", 1.05),
    ("1.05-1.10", 1.10),
]
OPEN_BUCKET = ">1.10"


def _rate_pct(flag: str) -> pl.Expr:
    return (100 * pl.col(flag).cast(pl.Float64).mean()).round(2)


def discount_sensitivity(
    line_items: pl.DataFrame,
    baselines: pl.DataFrame,
    params: PipelineParameters,
) -> pl.DataFrame:
    """
    Discount and trusted-discount rates for every ``sensitivity_thresholds`` value.

    Rates are over all line items, including those without a usable baseline.
    """
    base = join_baselines(line_items, baselines).with_columns(
        (pl.col("median_price").is_not_null() & (pl.col("median_price") > 0))
        .fill_null(False)
        .alias("has_median")
    )

    frames = []
    for threshold in params.sensitivity_thresholds:
        flagged = base.with_columns(discount_flag_exprs(threshold, params.min_baseline_n))
        frames.append(
            flagged.select([
                pl.lit(threshold).alias("discount_threshold"),
                pl.len().cast(pl.Int64).alias("line_count"),
                pl.col("has_median").sum().cast(pl.Int64).alias("with_median"),
                _rate_pct("is_discounted").alias("discount_rate_pct"),
                _rate_pct("is_trusted_discount").alias("trusted_discount_rate_pct"),
            ])
        )

    return pl.concat(frames, how="vertical").sort("discount_threshold")


def depth_bucket_expr() -> pl.Expr:
    """Label of the price / median ratio bucket"""
    ratio = pl.col("price") / pl.col("median_price")
    expr = pl.when(ratio < DEPTH_BUCKETS[0][1]).then(pl.lit(DEPTH_BUCKETS[0][0]))
    for label, upper in DEPTH_BUCKETS[1:]:
        expr = expr.when(ratio < upper).then(pl.lit(label))
    return expr.otherwise(pl.lit(OPEN_BUCKET))


def discount_depth_distribution(enriched: pl.DataFrame, params: PipelineParameters) -> pl.DataFrame:
    """Distribution of price / median over lines with a trusted baseline"""
    order = {label: i for i, (label, _) in enumerate(DEPTH_BUCKETS)}
    order[OPEN_BUCKET] = len(DEPTH_BUCKETS)

    trusted = enriched.filter(
        (pl.col("median_price") > 0) & (pl.col("sample_size") >= params.min_baseline_n)
    )

    return (
        trusted.with_columns(depth_bucket_expr().alias("bucket"))
        .group_by("bucket")
        .agg(pl.len().cast(pl.Int64).alias("lines"))
        .with_columns([
            (100 * pl.col("lines") / pl.col("lines").sum()).round(2).alias("pct_of_total"),
            pl.col("bucket").replace_strict(order, return_dtype=pl.Int64).alias("_order"),
        ])
        .sort("_order")
        .drop("_order")
    )


def reconciliation_gap_summary(kpis: pl.DataFrame, params: PipelineParameters) -> dict:
    """Orders whose payment gap is exact, small (up to ``small_gap_ceiling``) or big"""
    gap = payment_gap_expr()
    tolerance = params.reconciliation_tolerance

    row = kpis.select([
        (gap <= tolerance).sum().alias("exact_match"),
        ((gap > tolerance) & (gap <= params.small_gap_ceiling)).sum().alias("small_gap"),
        (gap > params.small_gap_ceiling).sum().alias("big_gap"),
        pl.len().alias("total_orders"),
    ]).row(0, named=True)

    return {key: int(value or 0) for key, value in row.items()}


def monthly_discount_rates(enriched: pl.DataFrame) -> pl.DataFrame:
    """Overall vs trusted discount rate per period, for lines with a baseline"""
    return (
        enriched.filter(pl.col("median_price").is_not_null())
        .group_by("period")
        .agg([
            _rate_pct("is_discounted").alias("discount_rate_pct"),
            _rate_pct("is_trusted_discount").alias("trusted_discount_rate_pct"),
            pl.len().cast(pl.Int64).alias("line_count"),
        ])
        .sort("period")
    )


def category_discount_rates(
    enriched: pl.DataFrame,
    products: pl.DataFrame,
    params: PipelineParameters,
    limit: int = 10,
) -> pl.DataFrame:
    """Categories with the highest trusted discount rate, above the category support floor"""
    return (
        with_category(enriched.filter(pl.col("median_price").is_not_null()), products)
        .group_by("category")
        .agg([
            _rate_pct("is_discounted").alias("discount_rate_pct"),
            _rate_pct("is_trusted_discount").alias("trusted_discount_rate_pct"),
            pl.len().cast(pl.Int64).alias("line_count"),
        ])
        .filter(pl.col("line_count") >= params.category_min_lines)
        .sort(["trusted_discount_rate_pct", "line_count", "category"], descending=[True, True, False])
        .head(limit)
    )


def baseline_coverage(enriched: pl.DataFrame) -> dict:
    """How many lines lack a baseline and how many rest on a low-confidence one"""
    row = enriched.select([
        pl.len().alias("total_lines"),
        pl.col("median_price").is_null().sum().alias("missing_median"),
        pl.col("is_low_confidence").sum().alias("low_confidence_lines"),
    ]).row(0, named=True)

    total = int(row["total_lines"])
    missing = int(row["missing_median"] or 0)
    low = int(row["low_confidence_lines"] or 0)
    return {
        "total_lines": total,
        "missing_median": missing,
        "pct_missing": round(100 * missing / total, 2) if total else 0.0,
        "low_confidence_lines": low,
        "pct_low_confidence": round(100 * low / (total - missing), 2) if total - missing else 0.0,
    }


def kpi_flag_split(kpis: pl.DataFrame) -> pl.DataFrame:
    """AOV and margin per order by free-shipping x trusted-discount flags"""
    return (
        kpis.group_by(["free_shipping", "any_trusted_discount"])
        .agg([
            pl.len().cast(pl.Int64).alias("orders"),
            pl.col("items_revenue").mean().round(2).alias("aov_items"),
            pl.col("margin_proxy").mean().round(2).alias("margin_per_order"),
        ])
        .sort(["free_shipping", "any_trusted_discount"], descending=True)
    )


def window_coverage(kpis: pl.DataFrame, params: PipelineParameters) -> dict:
    """First and last purchase period in ``kpis`` against the parameter window"""
    if kpis.height == 0:
        return {
            "window_start": params.window_start,
            "first_period": None,
            "last_period": None,
            "window_end": params.window_end,
            "starts_within_window": True,
            "ends_within_window": True,
        }

    first_period = kpis["period"].min()
    last_period = kpis["period"].max()
    return {
        "window_start": params.window_start,
        "first_period": first_period,
        "last_period": last_period,
        "window_end": params.window_end,
        "starts_within_window": first_period >= params.window_start,
        "ends_within_window": last_period <= params.window_end,
    }
