"""
Data Quality Module
"""
from .validators import (
    DataValidator,
    ValidationResult,
    ValidationSeverity,
    ValidationStatus,
    create_clean_kpis_validator,
    create_enriched_items_validator,
    create_line_items_validator,
    create_order_kpis_validator,
)

__all__ = [
    "DataValidator",
    "ValidationResult",
    "ValidationSeverity",
    "ValidationStatus",
    "create_clean_kpis_validator",
    "create_enriched_items_validator",
    "create_line_items_validator",
    "create_order_kpis_validator",
]
