from abc import ABC, abstractmethod
from typing import ContextManager
from sqlalchemy.orm import Session


class StorageAdapter(ABC):
    """
    Relational store for flow rules and executions.

    The engine only talks to storage through get_session(); every unit of
    work commits when the block exits cleanly and rolls back otherwise.
    """

    @abstractmethod
    def connect(self) -> None:
        """Open the connection pool. Calling it twice is a no-op."""

    @abstractmethod
    def close(self) -> None:
        """Dispose of the connection pool."""

    @abstractmethod
    def health_check(self) -> bool:
        """True when a trivial query round-trips."""

    @abstractmethod
    def create_schema(self) -> None:
        """Create the flow tables without migrations (SQLite, local dev)."""

    @abstractmethod
    def get_session(self) -> ContextManager[Session]:
        """Transactional session scope."""
