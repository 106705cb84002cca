"""
Repository interface and its backing stores.

Services depend only on ``Repository``; whether rows live in a dict or in a
SQL database is decided once, when ``create_store`` builds the
``TrackerStore`` at process start.
"""

from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel
from sqlalchemy import Engine
from sqlalchemy.orm import sessionmaker

from ..exceptions import ConflictError
from ..tracker.issue import Issue
from ..tracker.primitives import utc_now
from ..tracker.project import Project
from ..tracker.user import User
from .base import Base, create_db_engine, create_session_factory, init_database
from .models import IssueModel, ProjectModel, UserModel

logger = logging.getLogger(__name__)

EntityT = TypeVar("EntityT", bound=BaseModel)


def _plain(value: Any) -> Any:
    """Unwrap enum members so they compare and persist as raw values."""
    if isinstance(value, Enum):
        return value.value
    return value


def _dump(entity: BaseModel) -> Dict[str, Any]:
    return {key: _plain(value) for key, value in entity.model_dump().items()}


class Repository(ABC, Generic[EntityT]):
    """Capability set every backing store provides."""

    @abstractmethod
    def get(self, entity_id: str) -> Optional[EntityT]:
        """Return the entity or None."""

    @abstractmethod
    def list(self, **filters: Any) -> List[EntityT]:
        """Return entities whose fields equal every given filter, oldest first.

        Filters whose value is None are ignored.
        """

    @abstractmethod
    def create(self, entity: EntityT) -> EntityT:
        """Persist a new entity. Raises ConflictError on a duplicate id."""

    @abstractmethod
    def update(self, entity_id: str, **changes: Any) -> Optional[EntityT]:
        """Apply field changes and bump ``updated_at``. None if absent."""

    @abstractmethod
    def delete(self, entity_id: str) -> bool:
        """Remove the entity. Returns whether it existed."""

    def find_one(self, **filters: Any) -> Optional[EntityT]:
        matches = self.list(**filters)
        return matches[0] if matches else None


class InMemoryRepository(Repository[EntityT]):
    """Dict-backed store. Callers always receive copies."""

    def __init__(self, entity_cls: Type[EntityT]):
        self.entity_cls = entity_cls
        self._rows: Dict[str, EntityT] = {}

    def get(self, entity_id: str) -> Optional[EntityT]:
        row = self._rows.get(entity_id)
        return row.model_copy(deep=True) if row is not None else None

    def list(self, **filters: Any) -> List[EntityT]:
        active = {key: _plain(value) for key, value in filters.items() if value is not None}
        return [
            row.model_copy(deep=True)
            for row in self._rows.values()
            if all(_plain(getattr(row, key)) == value for key, value in active.items())
        ]

    def create(self, entity: EntityT) -> EntityT:
        entity_id = getattr(entity, "id")
        if entity_id in self._rows:
            raise ConflictError(f"{self.entity_cls.__name__} '{entity_id}' already exists")
        self._rows[entity_id] = entity.model_copy(deep=True)
        return entity.model_copy(deep=True)

    def update(self, entity_id: str, **changes: Any) -> Optional[EntityT]:
        row = self._rows.get(entity_id)
        if row is None:
            return None
        data = row.model_dump()
        data.update(copy.deepcopy(changes))
        data["updated_at"] = utc_now()
        updated = self.entity_cls.model_validate(data)
        self._rows[entity_id] = updated
        return updated.model_copy(deep=True)

    def delete(self, entity_id: str) -> bool:
        return self._rows.pop(entity_id, None) is not None


class SqlRepository(Repository[EntityT]):
    """SQLAlchemy-backed store, one session per operation."""

    def __init__(
        self,
        session_factory: sessionmaker,
        model_cls: Type[Base],
        entity_cls: Type[EntityT],
    ):
        self.session_factory = session_factory
        self.model_cls = model_cls
        self.entity_cls = entity_cls

    def _to_entity(self, row: Any) -> EntityT:
        return self.entity_cls.model_validate(row.to_dict())

    def get(self, entity_id: str) -> Optional[EntityT]:
        with self.session_factory() as db:
            row = db.get(self.model_cls, entity_id)
            return self._to_entity(row) if row is not None else None

    def list(self, **filters: Any) -> List[EntityT]:
        with self.session_factory() as db:
            query = db.query(self.model_cls)
            for key, value in filters.items():
                if value is not None:
                    query = query.filter(getattr(self.model_cls, key) == _plain(value))
            rows = query.order_by(self.model_cls.created_at).all()
            return [self._to_entity(row) for row in rows]

    def create(self, entity: EntityT) -> EntityT:
        with self.session_factory() as db:
            if db.get(self.model_cls, getattr(entity, "id")) is not None:
                raise ConflictError(
                    f"{self.entity_cls.__name__} '{getattr(entity, 'id')}' already exists"
                )
            row = self.model_cls(**_dump(entity))
            db.add(row)
            db.commit()
            db.refresh(row)
            return self._to_entity(row)

    def update(self, entity_id: str, **changes: Any) -> Optional[EntityT]:
        with self.session_factory() as db:
            row = db.get(self.model_cls, entity_id)
            if row is None:
                return None
            # Validate the merged state before touching the row
            merged = self._to_entity(row).model_dump()
            merged.update(changes)
            merged["updated_at"] = utc_now()
            validated = _dump(self.entity_cls.model_validate(merged))
            for key in list(changes) + ["updated_at"]:
                setattr(row, key, validated[key])
            db.commit()
            db.refresh(row)
            return self._to_entity(row)

    def delete(self, entity_id: str) -> bool:
        with self.session_factory() as db:
            row = db.get(self.model_cls, entity_id)
            if row is None:
                return False
            db.delete(row)
            db.commit()
            return True


@dataclass
class TrackerStore:
    """Process-wide store handle, built once and passed to every service."""

    issues: Repository[Issue]
    projects: Repository[Project]
    users: Repository[User]
    engine: Optional[Engine] = field(default=None, repr=False)

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()


def create_memory_store() -> TrackerStore:
    return TrackerStore(
        issues=InMemoryRepository(Issue),
        projects=InMemoryRepository(Project),
        users=InMemoryRepository(User),
    )


def create_sql_store(database_url: Optional[str] = None) -> TrackerStore:
    engine = create_db_engine(database_url)
    init_database(engine)
    session_factory = create_session_factory(engine)
    return TrackerStore(
        issues=SqlRepository(session_factory, IssueModel, Issue),
        projects=SqlRepository(session_factory, ProjectModel, Project),
        users=SqlRepository(session_factory, UserModel, User),
        engine=engine,
    )


def create_store(backend: str = "memory", database_url: Optional[str] = None) -> TrackerStore:
    """Build the store for the configured backend."""
    if backend == "memory":
        logger.info("Using in-memory tracker store")
        return create_memory_store()
    if backend == "sql":
        logger.info("Using SQL tracker store")
        return create_sql_store(database_url)
    raise ValueError(f"Unsupported store backend: {backend}. Supported: memory, sql")
