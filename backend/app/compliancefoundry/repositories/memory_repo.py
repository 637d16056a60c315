"""In-memory repository (keyed collection, insertion ordered)."""

from __future__ import annotations

import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Generic, Optional, Type, TypeVar

from compliancefoundry.repositories.base import BaseRepository, coerce_id

ModelT = TypeVar("ModelT")


class InMemoryRepository(BaseRepository[ModelT], Generic[ModelT]):
    """内存仓储

    实体仍使用 ORM 模型类（不挂载到任何 Session），列默认值在此处补齐。
    """

    def __init__(self, model: Type[ModelT]):
        self.model = model
        self._items: dict[uuid.UUID, ModelT] = {}
        self._lock = threading.Lock()

    def _apply_defaults(self, entity: ModelT) -> None:
        for column in self.model.__table__.columns:
            if getattr(entity, column.key, None) is not None:
                continue
            default = column.default
            if default is None or column.key == "id":
                continue
            if default.is_callable:
                setattr(entity, column.key, default.arg(None))
            elif default.is_scalar:
                setattr(entity, column.key, default.arg)

    def create(self, **fields: Any) -> ModelT:
        return self.create_many([fields])[0]

    def create_many(self, items: list[dict[str, Any]]) -> list[ModelT]:
        created = []
        with self._lock:
            for fields in items:
                entity = self.model(**fields)
                entity.id = uuid.uuid4()
                entity.seq_id = len(self._items) + 1
                timestamp_field = getattr(self.model, "timestamp_field", None)
                if timestamp_field:
                    setattr(entity, timestamp_field, datetime.now(timezone.utc))
                self._apply_defaults(entity)
                self._items[entity.id] = entity
                created.append(entity)
        return created

    def get(self, id: Any) -> Optional[ModelT]:
        entity_id = coerce_id(id)
        if entity_id is None:
            return None
        return self._items.get(entity_id)

    def list_by_project(self, project_id: Any) -> list[ModelT]:
        pid = coerce_id(project_id)
        if pid is None:
            return []
        # dict 保持插入顺序
        return [item for item in self._items.values() if item.project_id == pid]

    def update(self, id: Any, **fields: Any) -> Optional[ModelT]:
        entity = self.get(id)
        if entity is None:
            return None
        with self._lock:
            for key, value in fields.items():
                setattr(entity, key, value)
        return entity
