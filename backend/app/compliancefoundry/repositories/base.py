"""
Base repository interface.

仓储只暴露 create / get / list_by_project / update，不提供删除：
项目存续期间任何实体都不会被删除。列表一律按插入顺序返回。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Generic, Optional, TypeVar
from uuid import UUID

T = TypeVar("T")


def coerce_id(value: Any) -> Optional[UUID]:
    """把字符串 / UUID 统一为 UUID，非法值返回 None"""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


class BaseRepository(ABC, Generic[T]):
    """
    Abstract base class for repositories.
    """

    @abstractmethod
    def create(self, **fields: Any) -> T:
        """Persist a new entity with a fresh id and server timestamp."""
        ...

    @abstractmethod
    def create_many(self, items: list[dict[str, Any]]) -> list[T]:
        """Persist several entities, preserving the given order."""
        ...

    @abstractmethod
    def get(self, id: Any) -> Optional[T]:
        """Get an entity by ID."""
        ...

    @abstractmethod
    def list_by_project(self, project_id: Any) -> list[T]:
        """List a project's entities in insertion order."""
        ...

    @abstractmethod
    def update(self, id: Any, **fields: Any) -> Optional[T]:
        """Update fields of an entity; None if it does not exist."""
        ...
