"""
Pricing & Promo Analytics Pipeline

Price baselines, discount classification, order KPIs, payment reconciliation
and BI rollups over the Olist e-commerce dataset.
"""

__version__ = "1.0.0"
