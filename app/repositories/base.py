"""
Base repository class for data access layer.

The repository pattern provides:
1. Separation of data access logic from business logic
2. Single place for query logic (easier to maintain)
3. Easier testing (can mock repositories)

Repositories never commit. The sync orchestrator owns the transaction of a
pass and commits once at the end, so everything a repository adds or deletes
is discarded if a later step fails.

Example:
    class AllianceRepository(BaseRepository[Alliance]):
        def find_for_event(self, event_id: str) -> List[Alliance]:
            return self.where(Alliance.event_id == event_id, order_by=Alliance.name)
"""
from abc import ABC
from typing import TypeVar, Generic, Type, List, Any, Dict
from sqlalchemy.orm import Session

T = TypeVar("T")


class BaseRepository(Generic[T], ABC):
    """
    Base repository class providing common data access methods.

    Attributes:
        model_type: The SQLAlchemy model class this repository manages
        db: The database session
    """

    def __init__(self, model_type: Type[T], db: Session):
        self.model_type = model_type
        self.db = db

    # ========================================================================
    # CRUD Operations
    # ========================================================================

    def create(self, **kwargs) -> T:
        """
        Create a new record.

        Returns:
            The created record (not yet committed to database)
        """
        instance = self.model_type(**kwargs)
        self.db.add(instance)
        return instance

    def create_many(self, items: List[Dict[str, Any]]) -> List[T]:
        """Create multiple records (not yet committed)."""
        instances = [self.model_type(**item) for item in items]
        self.db.add_all(instances)
        return instances

    def delete_instance(self, instance: T) -> None:
        """Mark an instance for deletion."""
        self.db.delete(instance)

    # ========================================================================
    # Query Builders
    # ========================================================================

    def where(self, *criterion, order_by=None) -> List[T]:
        """Filter records using SQLAlchemy expressions."""
        query = self.db.query(self.model_type).filter(*criterion)
        if order_by is not None:
            query = query.order_by(order_by)
        return query.all()

    # ========================================================================
    # Session Operations
    # ========================================================================

    def flush(self) -> None:
        """Flush pending changes without committing."""
        self.db.flush()
