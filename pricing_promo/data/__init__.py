"""
Synthetic Data Module
"""
from .generators import GeneratorConfig, OlistDataGenerator, save_sources

__all__ = ["GeneratorConfig", "OlistDataGenerator", "save_sources"]
