# src/stellar_gateway/db/__init__.py
"""Database configuration and utilities."""

from .session import Base, Store, get_db

__all__ = ["Base", "Store", "get_db"]
