"""
Database Module
"""
from .connection import close_database, get_engine, init_database

__all__ = ["close_database", "get_engine", "init_database"]
