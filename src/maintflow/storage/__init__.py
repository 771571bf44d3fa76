"""MaintFlow Storage Layer - SQLAlchemy base, adapters and repository contracts."""

from .base import StorageAdapter
from .models import Base, JSON_TYPE, TIMESTAMP_TYPE
from .postgres_adapter import PostgresAdapter, PostgresConfig

__all__ = [
    "StorageAdapter",
    "PostgresAdapter",
    "PostgresConfig",
    "Base",
    "JSON_TYPE",
    "TIMESTAMP_TYPE",
]
