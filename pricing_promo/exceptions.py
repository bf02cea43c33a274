"""
Pipeline Exceptions

Every fault the batch run can raise derives from PipelineError so the invoking
harness can catch one type. Reconciliation mismatches and missing baselines are
not faults and never raise.
"""

from typing import Any, Dict, Optional, Tuple


class PipelineError(Exception):
    """Base class for pipeline failures"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class DataQualityError(PipelineError):
    """Malformed input record (negative money, missing timestamp, ...)"""

    def __init__(
        self,
        message: str,
        record_key: Optional[Tuple[Any, ...]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        if record_key is not None:
            message = f"{message} (record {record_key})"
        super().__init__(message, details)
        self.record_key = record_key


class InvalidInputError(DataQualityError):
    """Input that a single stage cannot process, e.g. a negative price at the estimator"""


class CardinalityError(PipelineError):
    """Duplicate keys or a broken one-row-per-entity invariant; output must not be published"""
