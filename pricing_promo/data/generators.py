"""
Synthetic Data Generator

Generates an Olist-shaped dataset for demos and integration tests.
Includes:
- Products across Olist categories, some without a category
- Sellers and customers with Brazilian locations
- Orders with repeat buyers (one customer_id per order, as in Olist)
- Order items priced around a per-product list price, with promotions
- Payments split into installments, with occasional vouchers and gaps
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Union

import numpy as np
import polars as pl
import structlog
from faker import Faker

from pricing_promo.config import get_settings
from pricing_promo.ingestion.batch_loader import SOURCE_FILES, SourceTables
from pricing_promo.schemas import SOURCE_SCHEMAS, TIMESTAMP_FORMAT

logger = structlog.get_logger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

# (category, list price range in BRL)
CATEGORIES = [
    ("beleza_saude", (15, 250)),
    ("informatica_acessorios", (30, 900)),
    ("cama_mesa_banho", (25, 300)),
    ("esporte_lazer", (20, 600)),
    ("moveis_decoracao", (40, 800)),
    ("utilidades_domesticas", (15, 200)),
    ("relogios_presentes", (50, 1200)),
    ("telefonia", (20, 1500)),
    ("brinquedos", (15, 400)),
    ("automotivo", (20, 500)),
]

PAYMENT_TYPES = [("credit_card", 0.74), ("boleto", 0.19), ("voucher", 0.05), ("debit_card", 0.02)]

ORDER_STATUSES = [("delivered", 0.96), ("shipped", 0.02), ("canceled", 0.01), ("invoiced", 0.01)]


@dataclass
class GeneratorConfig:
    """Size and shape of the synthetic dataset"""
    n_products: int = 200
    n_sellers: int = 40
    n_customers: int = 2500
    n_orders: int = 4000
    start: datetime = datetime(2017, 1, 1)
    months: int = 12
    uncategorized_rate: float = 0.02
    promo_rate: float = 0.12
    free_shipping_rate: float = 0.08
    payment_gap_rate: float = 0.03
    unpaid_rate: float = 0.005
    empty_order_rate: float = 0.005
    seed: int = 42


# =============================================================================
# GENERATOR
# =============================================================================

class OlistDataGenerator:
    """
    Seeded generator for the six Olist source tables.

    The same config and seed always produce the same tables.

    Example:
        sources = OlistDataGenerator(GeneratorConfig(n_orders=500)).generate()
    """

    def __init__(self, config: Optional[GeneratorConfig] = None):
        self.config = config or GeneratorConfig()
        self.rng = np.random.default_rng(self.config.seed)
        self.fake = Faker("pt_BR")
        self.fake.seed_instance(self.config.seed)

    def _id(self) -> str:
        return self.fake.md5()

    def _timestamp(self) -> datetime:
        span = timedelta(days=365.25 * self.config.months / 12)
        offset = int(self.rng.integers(0, int(span.total_seconds())))
        return self.config.start + timedelta(seconds=offset)

    def _products(self) -> List[dict]:
        products = []
        for _ in range(self.config.n_products):
            category, (low, high) = CATEGORIES[int(self.rng.integers(len(CATEGORIES)))]
            if self.rng.random() < self.config.uncategorized_rate:
                category = None
            products.append({
                "product_id": self._id(),
                "product_category_name": category,
                "product_name_length": int(self.rng.integers(20, 64)),
                "product_description_length": int(self.rng.integers(100, 3000)),
                "product_photos_qty": int(self.rng.integers(1, 7)),
                "product_weight_g": int(self.rng.integers(100, 20000)),
                "product_length_cm": int(self.rng.integers(10, 100)),
                "product_height_cm": int(self.rng.integers(2, 60)),
                "product_width_cm": int(self.rng.integers(8, 80)),
                "_list_price": round(float(self.rng.uniform(low, high)), 2),
            })
        return products

    def _sellers(self) -> List[dict]:
        return [
            {
                "seller_id": self._id(),
                "seller_zip_code_prefix": int(self.rng.integers(1000, 99999)),
                "seller_city": self.fake.city().lower(),
                "seller_state": self.fake.estado_sigla(),
            }
            for _ in range(self.config.n_sellers)
        ]

    def _item_price(self, list_price: float) -> float:
        if self.rng.random() < self.config.promo_rate:
            factor = self.rng.uniform(0.70, 0.92)
        else:
            factor = self.rng.normal(1.0, 0.02)
        return round(max(list_price * factor, 0.85), 2)

    def _freight(self, price: float) -> float:
        if self.rng.random() < self.config.free_shipping_rate:
            return 0.0
        return round(float(self.rng.uniform(0.05, 0.35)) * price + float(self.rng.uniform(5, 15)), 2)

    def _payments(self, order_id: str, total: float) -> List[dict]:
        if self.rng.random() < self.config.unpaid_rate:
            return []

        if self.rng.random() < self.config.payment_gap_rate:
            total = round(total + float(self.rng.uniform(0.5, 40)), 2)

        payment_type = self.rng.choice(
            [p[0] for p in PAYMENT_TYPES], p=[p[1] for p in PAYMENT_TYPES]
        )
        installments = int(self.rng.integers(1, 11)) if payment_type == "credit_card" else 1

        # Vouchers cover part of the bill; the rest goes on a second payment
        if self.rng.random() < 0.05 and total > 20:
            voucher = round(float(self.rng.uniform(5, total / 2)), 2)
            parts = [("voucher", 1, voucher), (str(payment_type), installments, round(total - voucher, 2))]
        else:
            parts = [(str(payment_type), installments, total)]

        return [
            {
                "order_id": order_id,
                "payment_sequential": seq,
                "payment_type": kind,
                "payment_installments": n,
                "payment_value": value,
            }
            for seq, (kind, n, value) in enumerate(parts, start=1)
        ]

    def generate(self) -> SourceTables:
        """Generate all six source tables"""
        cfg = self.config
        logger.info("Generating synthetic Olist dataset", n_orders=cfg.n_orders, seed=cfg.seed)

        products = self._products()
        sellers = self._sellers()
        persons = [
            {
                "customer_unique_id": self._id(),
                "customer_zip_code_prefix": int(self.rng.integers(1000, 99999)),
                "customer_city": self.fake.city().lower(),
                "customer_state": self.fake.estado_sigla(),
            }
            for _ in range(cfg.n_customers)
        ]

        # Skewed product popularity so some SKUs clear the rollup floors
        weights = 1 / np.arange(1, len(products) + 1) ** 0.8
        weights = weights / weights.sum()

        orders, items, payments, customers = [], [], [], []
        for _ in range(cfg.n_orders):
            order_id = self._id()
            customer_id = self._id()
            person = persons[int(self.rng.integers(len(persons)))]
            purchased_at = self._timestamp()
            status = self.rng.choice([s[0] for s in ORDER_STATUSES], p=[s[1] for s in ORDER_STATUSES])
            approved_at = purchased_at + timedelta(minutes=int(self.rng.integers(5, 2880)))
            delivered = status == "delivered"

            customers.append({"customer_id": customer_id, **person})
            orders.append({
                "order_id": order_id,
                "customer_id": customer_id,
                "order_status": str(status),
                "order_purchase_timestamp": purchased_at,
                "order_approved_at": approved_at,
                "order_delivered_carrier_date": approved_at + timedelta(days=2) if delivered else None,
                "order_delivered_customer_date": approved_at + timedelta(days=int(self.rng.integers(3, 25))) if delivered else None,
                "order_estimated_delivery_date": (purchased_at + timedelta(days=25)).replace(hour=0, minute=0, second=0),
            })

            if self.rng.random() < cfg.empty_order_rate:
                continue

            n_items = int(self.rng.choice([1, 2, 3, 4], p=[0.85, 0.10, 0.04, 0.01]))
            seller = sellers[int(self.rng.integers(len(sellers)))]
            total = 0.0
            for line_no in range(1, n_items + 1):
                product = products[int(self.rng.choice(len(products), p=weights))]
                price = self._item_price(product["_list_price"])
                freight = self._freight(price)
                total += price + freight
                items.append({
                    "order_id": order_id,
                    "order_item_id": line_no,
                    "product_id": product["product_id"],
                    "seller_id": seller["seller_id"],
                    "shipping_limit_date": purchased_at + timedelta(days=6),
                    "price": price,
                    "freight_value": freight,
                })

            payments.extend(self._payments(order_id, round(total, 2)))

        frames = {
            "orders": orders,
            "order_items": items,
            "payments": payments,
            "products": [{k: v for k, v in p.items() if not k.startswith("_")} for p in products],
            "customers": customers,
            "sellers": sellers,
        }
        sources = SourceTables(**{
            name: pl.DataFrame(rows, schema=SOURCE_SCHEMAS[name])
            for name, rows in frames.items()
        })

        logger.info("Synthetic dataset generated", **sources.row_counts())
        return sources


def save_sources(
    sources: SourceTables,
    output_dir: Union[str, Path, None] = None,
    file_format: str = "csv",
) -> Dict[str, Path]:
    """
    Write source tables under their Olist file names.

    Returns:
        Mapping of table name to written file
    """
    output_dir = Path(output_dir or get_settings().data_lake.raw_path)
    output_dir.mkdir(parents=True, exist_ok=True)

    written = {}
    for name, df in sources.tables().items():
        path = output_dir / f"{SOURCE_FILES[name]}.{file_format}"
        if file_format == "parquet":
            df.write_parquet(path)
        else:
            df.write_csv(path, datetime_format=TIMESTAMP_FORMAT)
        written[name] = path
        logger.info("Saved source table", table=name, rows=df.height, path=str(path))

    return written
