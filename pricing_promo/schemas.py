"""
Table Schemas

Polars schemas for the six Olist source tables and for every frame the
pipeline derives from them. Stage functions select and cast to these so that
downstream code and the BI sinks always see the same column order and types.
"""

from typing import Dict

import polars as pl

PERIOD_FORMAT = "%Y-%m"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
UNKNOWN_CATEGORY = "(unknown)"

# =============================================================================
# SOURCE TABLES
# =============================================================================

ORDERS_SCHEMA: Dict[str, pl.DataType] = {
    "order_id": pl.Utf8,
    "customer_id": pl.Utf8,
    "order_status": pl.Utf8,
    "order_purchase_timestamp": pl.Datetime("us"),
    "order_approved_at": pl.Datetime("us"),
    "order_delivered_carrier_date": pl.Datetime("us"),
    "order_delivered_customer_date": pl.Datetime("us"),
    "order_estimated_delivery_date": pl.Datetime("us"),
}

ORDER_ITEMS_SCHEMA: Dict[str, pl.DataType] = {
    "order_id": pl.Utf8,
    "order_item_id": pl.Int64,
    "product_id": pl.Utf8,
    "seller_id": pl.Utf8,
    "shipping_limit_date": pl.Datetime("us"),
    "price": pl.Float64,
    "freight_value": pl.Float64,
}

PAYMENTS_SCHEMA: Dict[str, pl.DataType] = {
    "order_id": pl.Utf8,
    "payment_sequential": pl.Int64,
    "payment_type": pl.Utf8,
    "payment_installments": pl.Int64,
    "payment_value": pl.Float64,
}

PRODUCTS_SCHEMA: Dict[str, pl.DataType] = {
    "product_id": pl.Utf8,
    "product_category_name": pl.Utf8,
    "product_name_length": pl.Int64,
    "product_description_length": pl.Int64,
    "product_photos_qty": pl.Int64,
    "product_weight_g": pl.Int64,
    "product_length_cm": pl.Int64,
    "product_height_cm": pl.Int64,
    "product_width_cm": pl.Int64,
}

CUSTOMERS_SCHEMA: Dict[str, pl.DataType] = {
    "customer_id": pl.Utf8,
    "customer_unique_id": pl.Utf8,
    "customer_zip_code_prefix": pl.Int64,
    "customer_city": pl.Utf8,
    "customer_state": pl.Utf8,
}

SELLERS_SCHEMA: Dict[str, pl.DataType] = {
    "seller_id": pl.Utf8,
    "seller_zip_code_prefix": pl.Int64,
    "seller_city": pl.Utf8,
    "seller_state": pl.Utf8,
}

# Columns without which the pipeline cannot run; the rest are optional
REQUIRED_SOURCE_COLUMNS: Dict[str, list] = {
    "orders": ["order_id", "customer_id", "order_purchase_timestamp"],
    "order_items": ["order_id", "order_item_id", "product_id", "seller_id", "price", "freight_value"],
    "payments": ["order_id", "payment_value"],
    "products": ["product_id", "product_category_name"],
    "customers": ["customer_id", "customer_unique_id"],
    "sellers": ["seller_id"],
}

SOURCE_SCHEMAS: Dict[str, Dict[str, pl.DataType]] = {
    "orders": ORDERS_SCHEMA,
    "order_items": ORDER_ITEMS_SCHEMA,
    "payments": PAYMENTS_SCHEMA,
    "products": PRODUCTS_SCHEMA,
    "customers": CUSTOMERS_SCHEMA,
    "sellers": SELLERS_SCHEMA,
}

# =============================================================================
# DERIVED FRAMES
# =============================================================================

LINE_ITEM_SCHEMA: Dict[str, pl.DataType] = {
    "order_id": pl.Utf8,
    "order_item_id": pl.Int64,
    "product_id": pl.Utf8,
    "seller_id": pl.Utf8,
    "price": pl.Float64,
    "freight_value": pl.Float64,
    "order_purchase_timestamp": pl.Datetime("us"),
    "period": pl.Utf8,
}

PRICE_BASELINE_SCHEMA: Dict[str, pl.DataType] = {
    "product_id": pl.Utf8,
    "period": pl.Utf8,
    "median_price": pl.Float64,
    "sample_size": pl.Int64,
}

ENRICHED_ITEM_SCHEMA: Dict[str, pl.DataType] = {
    **LINE_ITEM_SCHEMA,
    "median_price": pl.Float64,
    "sample_size": pl.Int64,
    "is_discounted": pl.Boolean,
    "is_low_confidence": pl.Boolean,
    "is_trusted_discount": pl.Boolean,
}

ORDER_KPI_SCHEMA: Dict[str, pl.DataType] = {
    "order_id": pl.Utf8,
    "customer_id": pl.Utf8,
    "order_purchase_timestamp": pl.Datetime("us"),
    "period": pl.Utf8,
    "items_revenue": pl.Float64,
    "freight_total": pl.Float64,
    "payment_value": pl.Float64,
    "margin_proxy": pl.Float64,
    "any_discount": pl.Boolean,
    "any_trusted_discount": pl.Boolean,
    "free_shipping": pl.Boolean,
}

EXCLUDED_ORDER_SCHEMA: Dict[str, pl.DataType] = {
    **ORDER_KPI_SCHEMA,
    "exclusion_reason": pl.Utf8,
}

COHORT_ACTIVITY_SCHEMA: Dict[str, pl.DataType] = {
    "customer_unique_id": pl.Utf8,
    "cohort_period": pl.Utf8,
    "order_month": pl.Utf8,
    "month_offset": pl.Int64,
    "items_revenue": pl.Float64,
    "margin_proxy": pl.Float64,
}


def conform(df: pl.DataFrame, schema: Dict[str, pl.DataType]) -> pl.DataFrame:
    """Select ``schema`` columns in order, casting each to its declared type"""
    return df.select([pl.col(name).cast(dtype) for name, dtype in schema.items()])


def empty_frame(schema: Dict[str, pl.DataType]) -> pl.DataFrame:
    """Zero-row frame with the given schema"""
    return pl.DataFrame(schema=schema)


def period_expr(column: str = "order_purchase_timestamp") -> pl.Expr:
    """``YYYY-MM`` bucket of a datetime column"""
    return pl.col(column).dt.strftime(PERIOD_FORMAT)


def period_index_expr(column: str) -> pl.Expr:
    """Month ordinal (year * 12 + month) of a ``YYYY-MM`` string column"""
    return (
        pl.col(column).str.slice(0, 4).cast(pl.Int64) * 12
        + pl.col(column).str.slice(5, 2).cast(pl.Int64)
    )
