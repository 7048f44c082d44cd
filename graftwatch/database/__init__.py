"""
Database module for GraftWatch
SQL persistence for the document store
"""

from .connection import DatabaseConnection
from .models import Base, DocumentRecord

__all__ = [
    "DatabaseConnection",
    "Base",
    "DocumentRecord",
]
