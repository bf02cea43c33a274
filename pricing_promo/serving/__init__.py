"""
Serving Module
"""
from .sinks import DatabaseSink, OutputSink, ParquetSink

__all__ = [
    "DatabaseSink",
    "OutputSink",
    "ParquetSink",
]
