"""
Ingestion Module
"""
from .batch_loader import BatchLoader, FileFormat, LoadResult, SourceTables, coerce_source, create_batch_loader

__all__ = ["BatchLoader", "FileFormat", "LoadResult", "SourceTables", "coerce_source", "create_batch_loader"]
