"""
Output Sinks

Publish the pipeline's BI tables. A sink replaces whole tables, never appends.
- ParquetSink: one ``<table>.parquet`` file per table in a directory, each
  replaced on its own
- DatabaseSink: one SQL table per frame, written in a single transaction
"""

import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Union

import polars as pl
import structlog
from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    Engine,
    Float,
    MetaData,
    String,
    Table,
)
from sqlalchemy.types import TypeEngine

from pricing_promo.config import get_settings

logger = structlog.get_logger(__name__)


class OutputSink(ABC):
    """Destination for published tables"""

    @abstractmethod
    def write(self, tables: Dict[str, pl.DataFrame]) -> None:
        """Replace every named table with the given frame"""


class ParquetSink(OutputSink):
    """
    Writes each table to ``<directory>/<table>.parquet``.

    Every file is first written next to its target and then moved into place,
    so no reader sees a half-written file. Files are swapped one at a time: if
    a swap fails, tables already moved hold this run's data and the rest keep
    the previous run's. Leftover staging files are removed either way.
    """

    def __init__(self, directory: Union[str, Path, None] = None):
        self.directory = Path(directory or get_settings().data_lake.curated_path)

    def path_for(self, table: str) -> Path:
        return self.directory / f"{table}.parquet"

    def write(self, tables: Dict[str, pl.DataFrame]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)

        staged: List[tuple] = []
        try:
            for name, df in tables.items():
                tmp_path = self.directory / f".{name}.parquet.tmp"
                staged.append((tmp_path, self.path_for(name)))
                df.write_parquet(tmp_path)

            for tmp_path, final_path in staged:
                os.replace(tmp_path, final_path)
        except Exception:
            for tmp_path, _ in staged:
                tmp_path.unlink(missing_ok=True)
            logger.error("Parquet publish failed", directory=str(self.directory))
            raise

        logger.info(
            "Published tables to parquet",
            directory=str(self.directory),
            tables={name: df.height for name, df in tables.items()},
        )

    def read(self, table: str) -> pl.DataFrame:
        return pl.read_parquet(self.path_for(table))


def sql_type(dtype: pl.DataType) -> TypeEngine:
    """SQLAlchemy column type for a polars dtype"""
    if dtype == pl.Boolean:
        return Boolean()
    if dtype.is_integer():
        return BigInteger()
    if dtype.is_float():
        return Float()
    if isinstance(dtype, pl.Datetime):
        return DateTime()
    if dtype == pl.Date:
        return Date()
    return String()


class DatabaseSink(OutputSink):
    """
    Writes each table to a SQL database through SQLAlchemy.

    Tables are dropped and recreated from the frame's schema inside one
    transaction, so either all tables are replaced or none are.
    """

    def __init__(self, engine: Engine, schema: Optional[str] = None):
        self.engine = engine
        self.schema = schema

    def _table(self, name: str, df: pl.DataFrame, metadata: MetaData) -> Table:
        columns = [Column(col, sql_type(dtype)) for col, dtype in df.schema.items()]
        return Table(name, metadata, *columns, schema=self.schema)

    def write(self, tables: Dict[str, pl.DataFrame]) -> None:
        metadata = MetaData()
        targets = [(self._table(name, df, metadata), df) for name, df in tables.items()]

        with self.engine.begin() as conn:
            for table, df in targets:
                table.drop(conn, checkfirst=True)
                table.create(conn)
                if df.height:
                    conn.execute(table.insert(), df.to_dicts())

        logger.info(
            "Published tables to database",
            dialect=self.engine.dialect.name,
            tables={name: df.height for name, df in tables.items()},
        )
