"""
Batch Entry Point

Runs the pricing & promo pipeline once: load the Olist extracts, compute every
derived table, validate, and publish to the curated zone and optionally to a
SQL database.

Usage:
    pricing-promo --source-dir data/raw --output-dir data/curated
    pricing-promo --generate --discount-threshold 0.10
"""

import argparse
import sys
from typing import List, Optional

import structlog
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from pricing_promo.config import get_parameter_store, get_settings
from pricing_promo.config.logging import configure_logging
from pricing_promo.exceptions import PipelineError

logger = structlog.get_logger(__name__)

# CLI flag -> PipelineParameters field
PARAMETER_FLAGS = {
    "discount_threshold": float,
    "min_baseline_n": int,
    "window_start": str,
    "window_end": str,
    "min_price": float,
    "min_freight": float,
    "reconciliation_tolerance": float,
    "category_min_lines": int,
    "sku_min_lines": int,
    "min_cohort_size": int,
}


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        prog="pricing-promo",
        description="Pricing & promo analytics batch run over the Olist dataset",
    )
    parser.add_argument("--source-dir", default=settings.data_lake.raw_path, help="Directory of Olist extracts")
    parser.add_argument("--output-dir", default=settings.data_lake.curated_path, help="Curated zone for parquet output")
    parser.add_argument("--format", choices=["csv", "parquet"], default=settings.data_lake.default_format, help="Extract format")
    parser.add_argument("--database-url", default=None, help="Also publish to this SQLAlchemy database")
    parser.add_argument("--generate", action="store_true", help="Write a synthetic dataset to --source-dir first")
    parser.add_argument("--seed", type=int, default=42, help="Seed for --generate")
    parser.add_argument("--include-analysis", action="store_true", help="Publish diagnostic and cohort tables too")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")

    params = parser.add_argument_group("pipeline parameters")
    for name, kind in PARAMETER_FLAGS.items():
        params.add_argument(f"--{name.replace('_', '-')}", dest=name, type=kind, default=None)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    # Imported after logging is configured so module loggers pick it up
    from pricing_promo.data.generators import GeneratorConfig, OlistDataGenerator, save_sources
    from pricing_promo.database.connection import close_database, init_database
    from pricing_promo.ingestion.batch_loader import BatchLoader
    from pricing_promo.serving.sinks import DatabaseSink, ParquetSink
    from pricing_promo.transformation.transformers import PricingPromoPipeline, publish

    overrides = {name: getattr(args, name) for name in PARAMETER_FLAGS if getattr(args, name) is not None}
    store = get_parameter_store()
    try:
        if overrides:
            store.update(**overrides)
    except ValidationError as e:
        logger.error("Invalid pipeline parameters", errors=e.errors(include_url=False))
        return 2

    try:
        engine = init_database(args.database_url) if args.database_url else None

        if args.generate:
            sources = OlistDataGenerator(GeneratorConfig(seed=args.seed)).generate()
            save_sources(sources, args.source_dir, file_format=args.format)

        sources = BatchLoader(file_format=args.format).load_sources(args.source_dir)
        result = PricingPromoPipeline(store=store).run(sources)

        # Transactional sink before the file sink
        if engine is not None:
            publish(result, DatabaseSink(engine), include_analysis=args.include_analysis)
        publish(result, ParquetSink(args.output_dir), include_analysis=args.include_analysis)
    except (PipelineError, FileNotFoundError, SQLAlchemyError) as e:
        logger.error("Pipeline run failed", error=str(e), error_type=type(e).__name__)
        return 1
    finally:
        close_database()

    logger.info(
        "Run summary",
        reconciliation=result.reports["reconciliation"],
        reconciliation_gaps=result.reports["reconciliation_gaps"],
        baseline_coverage=result.reports["baseline_coverage"],
        duration_seconds=round(result.duration_seconds, 3),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
