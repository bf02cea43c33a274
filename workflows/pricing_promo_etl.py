"""
Prefect Workflow Orchestration - Pricing & Promo Batch

Scheduled workflow for the pricing & promo pipeline with:
- Retries on source loading
- Parameter snapshot per flow run
- Publishing gated on data quality
- Completion and failure alerts
"""

from typing import Optional

from prefect import flow, task, get_run_logger

from pricing_promo.config import PipelineParameters, get_parameter_store, get_settings
from pricing_promo.ingestion.batch_loader import BatchLoader, SourceTables
from pricing_promo.serving.sinks import ParquetSink
from pricing_promo.transformation.transformers import PipelineResult, PricingPromoPipeline, publish

settings = get_settings()


# =============================================================================
# TASKS
# =============================================================================

@task(
    name="load_sources",
    description="Load the six Olist source tables",
    retries=3,
    retry_delay_seconds=60,
)
def load_sources(source_dir: str, file_format: str = "csv") -> SourceTables:
    """Load source tables from the raw zone"""
    logger = get_run_logger()

    sources = BatchLoader(file_format=file_format).load_sources(source_dir)
    logger.info(f"Loaded source tables: {sources.row_counts()}")
    return sources


@task(
    name="run_pipeline",
    description="Compute baselines, discount flags, order KPIs and rollups",
)
def run_pipeline(sources: SourceTables, overrides: Optional[dict] = None) -> PipelineResult:
    """Run the pipeline against one parameter snapshot"""
    logger = get_run_logger()

    store = get_parameter_store()
    params = store.get()
    if overrides:
        # Validated like a store update, without touching the process-wide snapshot
        params = PipelineParameters(**{**params.model_dump(), **overrides})

    result = PricingPromoPipeline(store=store).run(sources, params=params)

    reconciliation = result.reports["reconciliation"]
    logger.info(
        f"Pipeline complete: {reconciliation['clean_orders']}/{reconciliation['input_orders']} "
        f"orders clean, duration: {result.duration_seconds:.2f}s"
    )
    return result


@task(
    name="publish_tables",
    description="Replace the BI tables in the curated zone",
)
def publish_tables(result: PipelineResult, output_dir: str, include_analysis: bool = False) -> list:
    """Publish BI tables"""
    logger = get_run_logger()

    tables = publish(result, ParquetSink(output_dir), include_analysis=include_analysis)
    logger.info(f"Published {len(tables)} tables to {output_dir}")
    return tables


@task(
    name="send_alert",
    description="Send alert notification",
)
def send_alert(
    alert_type: str,
    message: str,
    severity: str = "info",
) -> None:
    """Send alert notification"""
    logger = get_run_logger()
    logger.warning(f"[{severity.upper()}] {alert_type}: {message}")


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="pricing_promo_batch",
    description="Batch pricing & promo analytics over the Olist dataset",
)
def pricing_promo_batch(
    source_dir: Optional[str] = None,
    output_dir: Optional[str] = None,
    file_format: Optional[str] = None,
    overrides: Optional[dict] = None,
    include_analysis: bool = False,
) -> dict:
    """
    Pricing & promo batch.

    Steps:
    1. Load source tables
    2. Run the pipeline
    3. Publish BI tables
    4. Send completion notification
    """
    logger = get_run_logger()

    source_dir = source_dir or settings.data_lake.raw_path
    output_dir = output_dir or settings.data_lake.curated_path
    file_format = file_format or settings.data_lake.default_format

    logger.info(f"Starting pricing & promo batch from {source_dir}")

    try:
        sources = load_sources(source_dir, file_format)
        result = run_pipeline(sources, overrides)
        tables = publish_tables(result, output_dir, include_analysis)
    except Exception as e:
        logger.error(f"Pricing & promo batch failed: {e}")
        send_alert(
            alert_type="Pricing Batch Failed",
            message=f"Pricing & promo batch failed: {str(e)}",
            severity="critical",
        )
        raise

    send_alert(
        alert_type="Pricing Batch Complete",
        message=f"Published {len(tables)} tables to {output_dir}",
        severity="info",
    )

    return {
        "status": "success",
        "tables": tables,
        "reconciliation": result.reports["reconciliation"],
        "params": result.params.model_dump(),
    }


if __name__ == "__main__":
    pricing_promo_batch()
