"""
Reconciliation & Cleaning Filter

An order is clean when its margin proxy is non-negative and its recorded
payments match items revenue plus freight within the reconciliation
tolerance. Everything else is treated as corrupted data: it is excluded from
the clean set, kept aside with its reason, and counted for monitoring.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict

import polars as pl
import structlog

from pricing_promo.config import PipelineParameters
from pricing_promo.schemas import EXCLUDED_ORDER_SCHEMA, ORDER_KPI_SCHEMA, conform

logger = structlog.get_logger(__name__)

GAP_DECIMALS = 6


class ExclusionReason(str, Enum):
    """Why an order was left out of the clean KPI set"""
    NEGATIVE_MARGIN = "negative_margin"
    PAYMENT_MISMATCH = "payment_mismatch"
    NEGATIVE_MARGIN_AND_PAYMENT_MISMATCH = "negative_margin_and_payment_mismatch"


@dataclass
class ReconciliationResult:
    """Clean orders plus the excluded ones with their reasons"""
    clean: pl.DataFrame
    excluded: pl.DataFrame
    tolerance: float
    input_rows: int = 0
    exclusion_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def excluded_count(self) -> int:
        return self.excluded.height

    @property
    def clean_pct(self) -> float:
        """Share of orders kept, in percent"""
        if self.input_rows == 0:
            return 100.0
        return round(100 * self.clean.height / self.input_rows, 2)

    def summary(self) -> Dict[str, int]:
        """Counts for monitoring: kept, excluded and excluded per reason"""
        return {
            "input_orders": self.input_rows,
            "clean_orders": self.clean.height,
            "excluded_orders": self.excluded_count,
            **{reason.value: self.exclusion_counts.get(reason.value, 0) for reason in ExclusionReason},
        }


def payment_gap_expr() -> pl.Expr:
    """Absolute difference between payments and revenue + freight"""
    return (
        pl.col("payment_value") - (pl.col("items_revenue") + pl.col("freight_total"))
    ).abs().round(GAP_DECIMALS)


def reconcile_orders(kpis: pl.DataFrame, params: PipelineParameters) -> ReconciliationResult:
    """
    Split order KPIs into clean and excluded sets.

    Args:
        kpis: OrderKPI frame
        params: Run parameter snapshot (``reconciliation_tolerance``)

    Returns:
        ReconciliationResult; ``clean`` keeps the OrderKPI shape
    """
    tolerance = params.reconciliation_tolerance

    checked = kpis.with_columns([
        (pl.col("margin_proxy") >= 0).fill_null(False).alias("_margin_ok"),
        (payment_gap_expr() <= tolerance).fill_null(False).alias("_reconciled"),
    ])

    clean = conform(
        checked.filter(pl.col("_margin_ok") & pl.col("_reconciled")),
        ORDER_KPI_SCHEMA,
    )

    excluded = checked.filter(~(pl.col("_margin_ok") & pl.col("_reconciled"))).with_columns(
        pl.when(~pl.col("_margin_ok") & ~pl.col("_reconciled"))
        .then(pl.lit(ExclusionReason.NEGATIVE_MARGIN_AND_PAYMENT_MISMATCH.value))
        .when(~pl.col("_margin_ok"))
        .then(pl.lit(ExclusionReason.NEGATIVE_MARGIN.value))
        .otherwise(pl.lit(ExclusionReason.PAYMENT_MISMATCH.value))
        .alias("exclusion_reason")
    )
    excluded = conform(excluded, EXCLUDED_ORDER_SCHEMA)

    counts = {
        row["exclusion_reason"]: row["len"]
        for row in excluded.group_by("exclusion_reason").len().iter_rows(named=True)
    }

    result = ReconciliationResult(
        clean=clean,
        excluded=excluded,
        tolerance=tolerance,
        input_rows=kpis.height,
        exclusion_counts=counts,
    )

    logger.info("Reconciled order KPIs", tolerance=tolerance, **result.summary())
    return result
