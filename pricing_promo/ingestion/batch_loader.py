"""
Batch Source Loader

Reads the six Olist extracts (CSV or Parquet) into typed polars frames.
Supports:
- Schema coercion against the declared source schemas
- Required-column validation
- File hashing for run audit
- Keyed lookups over the loaded tables
"""

import hashlib
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import polars as pl
import structlog
from pydantic import BaseModel

from pricing_promo.config import get_settings
from pricing_promo.exceptions import DataQualityError
from pricing_promo.schemas import (
    REQUIRED_SOURCE_COLUMNS,
    SOURCE_SCHEMAS,
    TIMESTAMP_FORMAT,
    period_expr,
)

logger = structlog.get_logger(__name__)

# Logical table name -> Olist extract file stem
SOURCE_FILES: Dict[str, str] = {
    "orders": "olist_orders_dataset",
    "order_items": "olist_order_items_dataset",
    "payments": "olist_order_payments_dataset",
    "products": "olist_products_dataset",
    "customers": "olist_customers_dataset",
    "sellers": "olist_sellers_dataset",
}

# Misspelled headers shipped in the public Olist extracts
COLUMN_ALIASES: Dict[str, str] = {
    "product_name_lenght": "product_name_length",
    "product_description_lenght": "product_description_length",
}

NULL_VALUES = ["", "NULL", "null", "None", "NA", "N/A"]


class FileFormat(str, Enum):
    """Supported file formats"""
    CSV = "csv"
    PARQUET = "parquet"


class LoadStatus(str, Enum):
    """Batch load status"""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class LoadResult(BaseModel):
    """Result of loading one source table"""
    file_path: str
    table: str
    status: LoadStatus
    rows_loaded: int = 0
    error_message: Optional[str] = None
    load_duration_seconds: float = 0
    started_at: datetime
    completed_at: Optional[datetime] = None
    file_hash: Optional[str] = None


def coerce_source(df: pl.DataFrame, table: str) -> pl.DataFrame:
    """
    Conform a raw frame to the declared schema of ``table``.

    Optional columns absent from the input are added as nulls; columns not in
    the schema are dropped. Timestamps given as strings are parsed with
    ``TIMESTAMP_FORMAT``.

    Raises:
        DataQualityError: Missing required columns or unparseable values
    """
    schema = SOURCE_SCHEMAS[table]
    df = df.rename({old: new for old, new in COLUMN_ALIASES.items() if old in df.columns})

    missing = [c for c in REQUIRED_SOURCE_COLUMNS[table] if c not in df.columns]
    if missing:
        raise DataQualityError(
            f"Source table '{table}' is missing required columns: {missing}",
            details={"table": table, "missing_columns": missing},
        )

    exprs = []
    for column, dtype in schema.items():
        if column not in df.columns:
            exprs.append(pl.lit(None, dtype=dtype).alias(column))
        elif isinstance(dtype, pl.Datetime) and df.schema[column] == pl.Utf8:
            exprs.append(pl.col(column).str.strptime(dtype, TIMESTAMP_FORMAT))
        elif dtype == pl.Int64 and df.schema[column] == pl.Utf8:
            # Extract writers render nullable integers as floats ("40.0")
            exprs.append(pl.col(column).cast(pl.Float64).cast(pl.Int64))
        else:
            exprs.append(pl.col(column).cast(dtype))

    try:
        return df.select(exprs)
    except (pl.exceptions.ComputeError, pl.exceptions.InvalidOperationError) as e:
        raise DataQualityError(
            f"Source table '{table}' has values that do not fit its schema: {e}",
            details={"table": table},
        ) from e


@dataclass
class SourceTables:
    """The six Olist source tables of one run"""
    orders: pl.DataFrame
    order_items: pl.DataFrame
    payments: pl.DataFrame
    products: pl.DataFrame
    customers: pl.DataFrame
    sellers: pl.DataFrame

    @classmethod
    def from_frames(cls, frames: Dict[str, pl.DataFrame]) -> "SourceTables":
        """Build from raw frames keyed by table name, coercing each to its schema"""
        missing = [name for name in SOURCE_SCHEMAS if name not in frames]
        if missing:
            raise DataQualityError(f"Missing source tables: {missing}", details={"missing_tables": missing})
        return cls(**{name: coerce_source(frames[name], name) for name in SOURCE_SCHEMAS})

    def tables(self) -> Dict[str, pl.DataFrame]:
        return {name: getattr(self, name) for name in SOURCE_SCHEMAS}

    def row_counts(self) -> Dict[str, int]:
        return {name: df.height for name, df in self.tables().items()}

    def order(self, order_id: str) -> Optional[Dict[str, Any]]:
        """Order header by id, or None if the order is unknown"""
        match = self.orders.filter(pl.col("order_id") == order_id)
        if match.height == 0:
            return None
        return match.row(0, named=True)

    def orders_between(self, start_period: str, end_period: str) -> pl.DataFrame:
        """Orders purchased in the inclusive ``YYYY-MM`` period range"""
        return (
            self.orders.with_columns(period_expr().alias("_period"))
            .filter(pl.col("_period").is_between(pl.lit(start_period), pl.lit(end_period), closed="both"))
            .drop("_period")
            .sort("order_id")
        )


class BatchLoader:
    """
    Loader for a directory of Olist extracts.

    Example:
        loader = BatchLoader()
        sources = loader.load_sources("data/raw")
    """

    def __init__(self, file_format: Union[FileFormat, str, None] = None):
        settings = get_settings()
        self.file_format = FileFormat(file_format or settings.data_lake.default_format)
        self.results: List[LoadResult] = []

    def _compute_file_hash(self, file_path: Path) -> str:
        """Compute MD5 hash of file for run audit"""
        hash_md5 = hashlib.md5()
        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(4096), b""):
                hash_md5.update(chunk)
        return hash_md5.hexdigest()

    def _read_csv(self, file_path: Path) -> pl.DataFrame:
        """Read every column as text; typing happens in ``coerce_source``"""
        return pl.read_csv(file_path, infer_schema_length=0, null_values=NULL_VALUES)

    def _read_parquet(self, file_path: Path) -> pl.DataFrame:
        return pl.read_parquet(file_path)

    def _read_file(self, file_path: Path) -> pl.DataFrame:
        readers = {
            FileFormat.CSV: self._read_csv,
            FileFormat.PARQUET: self._read_parquet,
        }
        return readers[self.file_format](file_path)

    def source_path(self, directory: Union[str, Path], table: str) -> Path:
        return Path(directory) / f"{SOURCE_FILES[table]}.{self.file_format.value}"

    def load_table(self, file_path: Union[str, Path], table: str) -> pl.DataFrame:
        """
        Load and coerce a single source table.

        Args:
            file_path: Extract file
            table: Logical table name (a key of ``SOURCE_FILES``)

        Returns:
            Typed frame for the table
        """
        file_path = Path(file_path)
        started_at = datetime.utcnow()

        result = LoadResult(
            file_path=str(file_path),
            table=table,
            status=LoadStatus.RUNNING,
            started_at=started_at,
        )
        self.results.append(result)

        try:
            if not file_path.exists():
                raise FileNotFoundError(f"File not found: {file_path}")

            result.file_hash = self._compute_file_hash(file_path)
            df = coerce_source(self._read_file(file_path), table)

            result.status = LoadStatus.COMPLETED
            result.rows_loaded = df.height
        except Exception as e:
            result.status = LoadStatus.FAILED
            result.error_message = str(e)
            logger.error("Source load failed", table=table, file=str(file_path), error=str(e))
            raise
        finally:
            result.completed_at = datetime.utcnow()
            result.load_duration_seconds = (result.completed_at - started_at).total_seconds()

        logger.info(
            "Loaded source table",
            table=table,
            rows=result.rows_loaded,
            duration_seconds=result.load_duration_seconds,
        )
        return df

    def load_sources(self, directory: Union[str, Path, None] = None) -> SourceTables:
        """
        Load all six source tables from ``directory``.

        Args:
            directory: Folder holding the extracts; defaults to DATA_RAW_PATH

        Returns:
            SourceTables with every frame conformed to its schema
        """
        directory = Path(directory or get_settings().data_lake.raw_path)
        self.results = []

        logger.info("Loading source tables", directory=str(directory), format=self.file_format.value)

        frames = {table: self.load_table(self.source_path(directory, table), table) for table in SOURCE_FILES}
        sources = SourceTables(**frames)

        logger.info("Source tables loaded", **sources.row_counts())
        return sources


def create_batch_loader() -> BatchLoader:
    """Create a BatchLoader for the configured extract format"""
    return BatchLoader(file_format=get_settings().data_lake.default_format)
