"""
Test Suite Configuration
"""
from datetime import datetime
from typing import Callable, List, Optional

import pytest
import polars as pl

from pricing_promo.config import ParameterStore, PipelineParameters, Settings
from pricing_promo.data.generators import GeneratorConfig, OlistDataGenerator
from pricing_promo.ingestion.batch_loader import SourceTables, coerce_source
from pricing_promo.schemas import (
    LINE_ITEM_SCHEMA,
    ORDER_KPI_SCHEMA,
    PRICE_BASELINE_SCHEMA,
    TIMESTAMP_FORMAT,
    conform,
    period_expr,
)

DEFAULT_TS = "2017-03-10 10:00:00"


def ts(value: str) -> datetime:
    return datetime.strptime(value, TIMESTAMP_FORMAT)


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
    )


@pytest.fixture
def params() -> PipelineParameters:
    """Default pipeline parameters"""
    return PipelineParameters()


@pytest.fixture
def store() -> ParameterStore:
    """Fresh parameter store, isolated from the process-wide one"""
    return ParameterStore(PipelineParameters())


@pytest.fixture
def make_line_items() -> Callable[..., pl.DataFrame]:
    """Build a LineItem frame; one entry per line in each list"""
    def _make(
        order_ids: List[str],
        prices: List[Optional[float]],
        product_ids: Optional[List[str]] = None,
        freights: Optional[List[float]] = None,
        timestamps: Optional[List[Optional[str]]] = None,
        item_ids: Optional[List[int]] = None,
    ) -> pl.DataFrame:
        n = len(order_ids)
        df = pl.DataFrame(
            {
                "order_id": order_ids,
                "order_item_id": item_ids or list(range(1, n + 1)),
                "product_id": product_ids or ["prod-1"] * n,
                "seller_id": ["seller-1"] * n,
                "price": prices,
                "freight_value": freights or [10.0] * n,
                "order_purchase_timestamp": [
                    ts(t) if t else None for t in (timestamps or [DEFAULT_TS] * n)
                ],
            },
            schema={
                "order_id": pl.Utf8,
                "order_item_id": pl.Int64,
                "product_id": pl.Utf8,
                "seller_id": pl.Utf8,
                "price": pl.Float64,
                "freight_value": pl.Float64,
                "order_purchase_timestamp": pl.Datetime("us"),
            },
        )
        return conform(df.with_columns(period_expr().alias("period")), LINE_ITEM_SCHEMA)

    return _make


@pytest.fixture
def make_baselines() -> Callable[..., pl.DataFrame]:
    """Build a PriceBaseline frame from (product_id, period, median, n) tuples"""
    def _make(rows: List[tuple]) -> pl.DataFrame:
        return pl.DataFrame(rows, schema=PRICE_BASELINE_SCHEMA, orient="row")

    return _make


@pytest.fixture
def make_orders() -> Callable[..., pl.DataFrame]:
    """Build an orders source table"""
    def _make(
        order_ids: List[str],
        customer_ids: Optional[List[str]] = None,
        timestamps: Optional[List[str]] = None,
    ) -> pl.DataFrame:
        n = len(order_ids)
        return coerce_source(
            pl.DataFrame({
                "order_id": order_ids,
                "customer_id": customer_ids or [f"cust-{o}" for o in order_ids],
                "order_purchase_timestamp": timestamps or [DEFAULT_TS] * n,
            }),
            "orders",
        )

    return _make


@pytest.fixture
def make_payments() -> Callable[..., pl.DataFrame]:
    """Build a payments source table from (order_id, value) pairs"""
    def _make(rows: List[tuple]) -> pl.DataFrame:
        return coerce_source(
            pl.DataFrame(
                {
                    "order_id": [r[0] for r in rows],
                    "payment_value": [r[1] for r in rows],
                },
                schema={"order_id": pl.Utf8, "payment_value": pl.Float64},
            ),
            "payments",
        )

    return _make


@pytest.fixture
def make_products() -> Callable[..., pl.DataFrame]:
    """Build a products source table from (product_id, category) pairs"""
    def _make(rows: List[tuple]) -> pl.DataFrame:
        return coerce_source(
            pl.DataFrame(
                {
                    "product_id": [r[0] for r in rows],
                    "product_category_name": [r[1] for r in rows],
                },
                schema={"product_id": pl.Utf8, "product_category_name": pl.Utf8},
            ),
            "products",
        )

    return _make


@pytest.fixture
def make_customers() -> Callable[..., pl.DataFrame]:
    """Build a customers source table from (customer_id, customer_unique_id) pairs"""
    def _make(rows: List[tuple]) -> pl.DataFrame:
        return coerce_source(
            pl.DataFrame(
                {
                    "customer_id": [r[0] for r in rows],
                    "customer_unique_id": [r[1] for r in rows],
                },
                schema={"customer_id": pl.Utf8, "customer_unique_id": pl.Utf8},
            ),
            "customers",
        )

    return _make


@pytest.fixture
def make_kpis() -> Callable[..., pl.DataFrame]:
    """Build an OrderKPI frame from partial row dicts"""
    def _make(rows: List[dict]) -> pl.DataFrame:
        full = []
        for i, row in enumerate(rows):
            purchased = ts(row.get("timestamp", DEFAULT_TS))
            revenue = row.get("items_revenue", 100.0)
            freight = row.get("freight_total", 10.0)
            full.append({
                "order_id": row.get("order_id", f"ord-{i + 1}"),
                "customer_id": row.get("customer_id", f"cust-{i + 1}"),
                "order_purchase_timestamp": purchased,
                "period": purchased.strftime("%Y-%m"),
                "items_revenue": revenue,
                "freight_total": freight,
                "payment_value": row.get("payment_value", revenue + freight),
                "margin_proxy": row.get("margin_proxy", revenue - freight),
                "any_discount": row.get("any_discount", row.get("any_trusted_discount", False)),
                "any_trusted_discount": row.get("any_trusted_discount", False),
                "free_shipping": freight == 0,
            })
        return pl.DataFrame(full, schema=ORDER_KPI_SCHEMA)

    return _make


@pytest.fixture(scope="session")
def synthetic_sources() -> SourceTables:
    """Small seeded Olist-shaped dataset"""
    return OlistDataGenerator(GeneratorConfig(n_orders=600, n_customers=400, n_products=60, seed=7)).generate()
