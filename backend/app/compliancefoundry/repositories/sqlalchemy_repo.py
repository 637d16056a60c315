"""SQLAlchemy-backed repository."""

from __future__ import annotations

import logging
import threading
from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from compliancefoundry.repositories.base import BaseRepository, coerce_id

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")

# 同一进程内 seq_id 的分配与提交串行化
_seq_lock = threading.Lock()


class SqlAlchemyRepository(BaseRepository[ModelT], Generic[ModelT]):
    """单表仓储，seq_id 取当前最大值 + 1；列表按 (seq_id, 时间戳, id) 排序"""

    def __init__(self, db: Session, model: Type[ModelT]):
        self.db = db
        self.model = model

    def _next_seq(self) -> int:
        max_seq = self.db.query(func.max(self.model.seq_id)).scalar() or 0
        return max_seq + 1

    def _build(self, seq_id: int, fields: dict[str, Any]) -> ModelT:
        entity = self.model(**fields)
        entity.seq_id = seq_id
        return entity

    def create(self, **fields: Any) -> ModelT:
        return self.create_many([fields])[0]

    def create_many(self, items: list[dict[str, Any]]) -> list[ModelT]:
        if not items:
            return []
        with _seq_lock:
            try:
                next_seq = self._next_seq()
                entities = []
                for offset, fields in enumerate(items):
                    entity = self._build(next_seq + offset, fields)
                    self.db.add(entity)
                    entities.append(entity)
                self.db.commit()
            except SQLAlchemyError:
                self.db.rollback()
                logger.exception(f"写入 {self.model.__tablename__} 失败")
                raise

        for entity in entities:
            self.db.refresh(entity)
        return entities

    def _ordering(self) -> list:
        # 多进程写入时 seq_id 仍可能重复，按时间戳与 id 兜底
        columns = [self.model.seq_id.asc()]
        timestamp_field = getattr(self.model, "timestamp_field", None)
        if timestamp_field:
            columns.append(getattr(self.model, timestamp_field).asc())
        columns.append(self.model.id.asc())
        return columns

    def get(self, id: Any) -> Optional[ModelT]:
        entity_id = coerce_id(id)
        if entity_id is None:
            return None
        return self.db.query(self.model).filter(self.model.id == entity_id).first()

    def list_by_project(self, project_id: Any) -> list[ModelT]:
        pid = coerce_id(project_id)
        if pid is None:
            return []
        return (
            self.db.query(self.model)
            .filter(self.model.project_id == pid)
            .order_by(*self._ordering())
            .all()
        )

    def update(self, id: Any, **fields: Any) -> Optional[ModelT]:
        entity = self.get(id)
        if entity is None:
            return None
        try:
            for key, value in fields.items():
                setattr(entity, key, value)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(f"更新 {self.model.__tablename__} {id} 失败")
            raise
        self.db.refresh(entity)
        return entity
