"""
Core utilities shared across the insights engine.
"""

from .database import PostgresConnection
from .logger import setup_logging

__all__ = ["PostgresConnection", "setup_logging"]
