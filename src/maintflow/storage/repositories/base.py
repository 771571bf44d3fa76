from abc import ABC, abstractmethod
from typing import Generic, TypeVar, Optional, List, Dict, Any
from sqlalchemy.orm import Session

T = TypeVar("T")


class AppendOnlyRepository(Generic[T], ABC):
    """
    Repository contract for logs: rows are added and read, never changed.

    Every read is scoped to a tenant (company).
    """

    @abstractmethod
    def create(self, session: Session, entity: Any) -> T:
        pass

    @abstractmethod
    def get(self, session: Session, id: str, company_id: Optional[str] = None) -> Optional[T]:
        pass

    @abstractmethod
    def list(self, session: Session, company_id: str, limit: int = 100, offset: int = 0) -> List[T]:
        pass


class BaseRepository(AppendOnlyRepository[T]):
    """Tenant-scoped CRUD contract using a SQLAlchemy Session."""

    @abstractmethod
    def update(self, session: Session, id: str, updates: Dict[str, Any],
               company_id: Optional[str] = None) -> Optional[T]:
        pass

    @abstractmethod
    def delete(self, session: Session, id: str, company_id: Optional[str] = None) -> bool:
        pass
