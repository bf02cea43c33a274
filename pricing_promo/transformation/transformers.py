"""
Pricing & Promo Pipeline

Orchestrates the batch run as an explicit sequence of stages:

1. Assemble and check line items
2. Estimate product-month price baselines
3. Classify line items (full and guarded)
4. Aggregate order KPIs
5. Reconcile payments and split clean / excluded orders
6. Build rollups, cohorts and diagnostics
7. Validate outputs before anything may be published

Each stage is a pure function of its inputs and the run's parameter snapshot.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import polars as pl
import structlog

from pricing_promo.config import ParameterStore, PipelineParameters, get_parameter_store, get_settings
from pricing_promo.exceptions import PipelineError
from pricing_promo.ingestion.batch_loader import SourceTables
from pricing_promo.quality.validators import (
    ValidationResult,
    ValidationStatus,
    create_clean_kpis_validator,
    create_enriched_items_validator,
    create_line_items_validator,
    create_order_kpis_validator,
)
from pricing_promo.reporting.cohorts import (
    build_cohort_activity,
    cohort_promo_split,
    retention_curve,
    retention_curve_filtered,
    revenue_retention,
    time_to_second_order,
)
from pricing_promo.reporting.diagnostics import (
    baseline_coverage,
    category_discount_rates,
    discount_depth_distribution,
    discount_sensitivity,
    kpi_flag_split,
    monthly_discount_rates,
    reconciliation_gap_summary,
    window_coverage,
)
from pricing_promo.reporting.rollups import category_sku_rollup, monthly_overview, monthly_promo_split
from pricing_promo.serving.sinks import OutputSink
from .aggregator import aggregate_orders
from .baseline import estimate_price_baselines
from .classifier import classify_line_items, classify_line_items_guarded
from .cleaners import (
    DIMENSION_KEYS,
    assemble_line_items,
    ensure_unique_key,
    orders_in_window,
    validate_line_items,
)
from .reconciliation import reconcile_orders

logger = structlog.get_logger(__name__)

# Tables consumed by the dashboards
BI_TABLES = [
    "item_enriched_guarded",
    "order_kpis_clean",
    "agg_monthly_overview",
    "agg_monthly_promo_split",
    "agg_category_sku_rollup",
]


@dataclass
class StageStats:
    """Timing and row counts of one pipeline stage"""
    name: str
    output_rows: int
    started_at: datetime
    completed_at: datetime

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()


@dataclass
class PipelineResult:
    """Everything one run produced"""
    params: PipelineParameters
    frames: Dict[str, pl.DataFrame]
    reports: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    stages: List[StageStats] = field(default_factory=list)
    validations: List[ValidationResult] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    def __getitem__(self, name: str) -> pl.DataFrame:
        return self.frames[name]

    @property
    def duration_seconds(self) -> float:
        if self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()

    @property
    def is_publishable(self) -> bool:
        return all(v.status != ValidationStatus.FAILED for v in self.validations)

    def bi_tables(self) -> Dict[str, pl.DataFrame]:
        return {name: self.frames[name] for name in BI_TABLES}

    def analysis_tables(self) -> Dict[str, pl.DataFrame]:
        return {name: df for name, df in self.frames.items() if name not in BI_TABLES}


class PricingPromoPipeline:
    """
    Batch pipeline from Olist source tables to BI tables.

    Example:
        pipeline = PricingPromoPipeline()
        result = pipeline.run(sources)
        publish(result, ParquetSink("data/curated"))
    """

    def __init__(
        self,
        store: Optional[ParameterStore] = None,
        enable_validation: Optional[bool] = None,
        strict_mode: Optional[bool] = None,
    ):
        settings = get_settings()
        self.store = store or get_parameter_store()
        self.enable_validation = (
            settings.data_quality.enable_data_quality_checks if enable_validation is None else enable_validation
        )
        self.strict_mode = settings.data_quality.strict if strict_mode is None else strict_mode

    def _stage(self, result: PipelineResult, name: str, func: Callable, *args) -> Any:
        """Run one stage, recording its timing and output size"""
        started_at = datetime.utcnow()
        try:
            output = func(*args)
        except PipelineError as e:
            logger.error("Pipeline stage failed", stage=name, error=e.message, details=e.details)
            raise

        rows = output.height if isinstance(output, pl.DataFrame) else 0
        result.stages.append(StageStats(name, rows, started_at, datetime.utcnow()))
        return output

    def _validate(self, result: PipelineResult, validator, df: pl.DataFrame) -> None:
        if not self.enable_validation:
            return
        outcome = validator.validate(df)
        result.validations.append(outcome)
        outcome.raise_for_status()

    def run(self, sources: SourceTables, params: Optional[PipelineParameters] = None) -> PipelineResult:
        """
        Run every stage against ``sources``.

        Args:
            sources: The six source tables
            params: Parameter snapshot; defaults to the store's current one,
                read once for the whole run

        Returns:
            PipelineResult with all derived frames and reports

        Raises:
            DataQualityError: Malformed input or a failed quality check
            CardinalityError: Duplicate keys or broken one-row-per-order
        """
        params = params or self.store.get()
        result = PipelineResult(params=params, frames={})
        frames = result.frames

        logger.info(
            "Starting pricing & promo pipeline",
            discount_threshold=params.discount_threshold,
            min_baseline_n=params.min_baseline_n,
            window_start=params.window_start,
            window_end=params.window_end,
            **sources.row_counts(),
        )

        # Step 0: Lookup keys
        for table, key in DIMENSION_KEYS.items():
            self._stage(result, f"unique_{key}", ensure_unique_key, getattr(sources, table), key, table)

        # Step 1: Line items
        line_items, assembly = self._stage(
            result, "assemble_line_items", assemble_line_items, sources.order_items, sources.orders
        )
        result.reports["assembly"] = {
            "raw_items": assembly.raw_items,
            "orphan_items": assembly.orphan_items,
            "line_items": assembly.line_items,
        }
        frames["line_items"] = self._stage(result, "validate_line_items", validate_line_items, line_items)
        self._validate(result, create_line_items_validator(self.strict_mode), frames["line_items"])

        # Step 2: Baselines
        frames["price_baselines"] = self._stage(
            result, "estimate_price_baselines", estimate_price_baselines, frames["line_items"]
        )

        # Step 3: Classification
        frames["item_enriched"] = self._stage(
            result, "classify_line_items", classify_line_items,
            frames["line_items"], frames["price_baselines"], params,
        )
        frames["item_enriched_guarded"] = self._stage(
            result, "classify_line_items_guarded", classify_line_items_guarded,
            frames["line_items"], frames["price_baselines"], params,
        )
        self._validate(result, create_enriched_items_validator(self.strict_mode), frames["item_enriched"])
        self._validate(result, create_enriched_items_validator(self.strict_mode), frames["item_enriched_guarded"])

        # Step 4: Order KPIs
        frames["order_kpis"] = self._stage(
            result, "aggregate_orders", aggregate_orders,
            frames["item_enriched"], sources.orders, sources.payments,
        )
        self._validate(
            result,
            create_order_kpis_validator(frames["item_enriched"], self.strict_mode),
            frames["order_kpis"],
        )

        # Step 5: Reconciliation
        reconciliation = self._stage(result, "reconcile_orders", reconcile_orders, frames["order_kpis"], params)
        frames["order_kpis_clean"] = reconciliation.clean
        frames["order_kpis_excluded"] = reconciliation.excluded
        frames["order_kpis_clean_in_window"] = orders_in_window(reconciliation.clean, params)
        result.reports["reconciliation"] = reconciliation.summary()
        self._validate(
            result,
            create_clean_kpis_validator(frames["order_kpis"], params.reconciliation_tolerance, self.strict_mode),
            frames["order_kpis_clean"],
        )

        # Step 6: Rollups and cohorts
        clean = frames["order_kpis_clean"]
        frames["agg_monthly_overview"] = self._stage(result, "monthly_overview", monthly_overview, clean)
        frames["agg_monthly_promo_split"] = self._stage(result, "monthly_promo_split", monthly_promo_split, clean)
        frames["agg_category_sku_rollup"] = self._stage(
            result, "category_sku_rollup", category_sku_rollup,
            frames["item_enriched_guarded"], clean, sources.products, params,
        )

        activity = self._stage(result, "build_cohort_activity", build_cohort_activity, clean, sources.customers)
        curve = retention_curve(activity)
        frames["cohort_activity"] = activity
        frames["cohort_retention"] = curve
        frames["cohort_retention_filtered"] = retention_curve_filtered(curve, params)
        frames["cohort_revenue_retention"] = revenue_retention(activity)
        frames["cohort_promo_split"] = cohort_promo_split(clean, sources.customers)
        frames["time_to_second_order"] = time_to_second_order(clean, sources.customers)

        # Step 7: Diagnostics
        frames["discount_sensitivity"] = self._stage(
            result, "discount_sensitivity", discount_sensitivity,
            frames["line_items"], frames["price_baselines"], params,
        )
        frames["discount_depth_distribution"] = discount_depth_distribution(frames["item_enriched"], params)
        frames["monthly_discount_rates"] = monthly_discount_rates(frames["item_enriched"])
        frames["category_discount_rates"] = category_discount_rates(
            frames["item_enriched"], sources.products, params
        )
        frames["kpi_flag_split"] = kpi_flag_split(clean)
        result.reports["reconciliation_gaps"] = reconciliation_gap_summary(frames["order_kpis"], params)
        result.reports["baseline_coverage"] = baseline_coverage(frames["item_enriched"])
        result.reports["window_coverage"] = window_coverage(clean, params)

        result.completed_at = datetime.utcnow()

        logger.info(
            "Pricing & promo pipeline complete",
            duration_seconds=round(result.duration_seconds, 3),
            line_items=frames["line_items"].height,
            orders=frames["order_kpis"].height,
            clean_orders=clean.height,
            excluded_orders=frames["order_kpis_excluded"].height,
        )
        return result


def publish(result: PipelineResult, sink: OutputSink, include_analysis: bool = False) -> List[str]:
    """
    Replace the BI tables (and optionally the analysis tables) in ``sink``.

    Returns:
        Names of the published tables

    Raises:
        PipelineError: If any validation suite of the run failed
    """
    if not result.is_publishable:
        failed = [v.suite for v in result.validations if v.status == ValidationStatus.FAILED]
        raise PipelineError("Refusing to publish a run with failed validations", details={"suites": failed})

    tables = result.bi_tables()
    if include_analysis:
        tables.update(result.analysis_tables())

    sink.write(tables)
    logger.info("Published pipeline output", tables=sorted(tables))
    return sorted(tables)
