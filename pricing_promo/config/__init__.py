"""
Pricing & Promo Analytics Pipeline
Configuration Module
"""
from .settings import (
    ParameterStore,
    PipelineParameters,
    Settings,
    get_parameter_store,
    get_settings,
)

__all__ = [
    "ParameterStore",
    "PipelineParameters",
    "Settings",
    "get_parameter_store",
    "get_settings",
]
