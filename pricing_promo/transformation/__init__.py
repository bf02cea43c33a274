"""
Data Transformation Module

Stage functions only; the orchestrator lives in ``transformers``.
"""
from .aggregator import aggregate_orders, summarize_payments
from .baseline import estimate_price_baselines
from .classifier import classify_line_items, classify_line_items_guarded
from .cleaners import assemble_line_items, items_sane, orders_in_window, validate_line_items
from .reconciliation import ExclusionReason, ReconciliationResult, reconcile_orders

__all__ = [
    "aggregate_orders",
    "summarize_payments",
    "estimate_price_baselines",
    "classify_line_items",
    "classify_line_items_guarded",
    "assemble_line_items",
    "items_sane",
    "orders_in_window",
    "validate_line_items",
    "ExclusionReason",
    "ReconciliationResult",
    "reconcile_orders",
]
