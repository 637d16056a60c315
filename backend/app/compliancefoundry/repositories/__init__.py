"""Repositories package"""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from compliancefoundry.database.models import (
    AiExplanation,
    ComplianceMapping,
    Document,
    Project,
    Requirement,
    TestCase,
)
from compliancefoundry.repositories.base import BaseRepository, coerce_id
from compliancefoundry.repositories.memory_repo import InMemoryRepository
from compliancefoundry.repositories.sqlalchemy_repo import SqlAlchemyRepository


@dataclass
class Repositories:
    """六个实体集合，按项目划分"""
    projects: BaseRepository[Project]
    documents: BaseRepository[Document]
    requirements: BaseRepository[Requirement]
    test_cases: BaseRepository[TestCase]
    compliance_mappings: BaseRepository[ComplianceMapping]
    explanations: BaseRepository[AiExplanation]


def sqlalchemy_repositories(db: Session) -> Repositories:
    return Repositories(
        projects=SqlAlchemyRepository(db, Project),
        documents=SqlAlchemyRepository(db, Document),
        requirements=SqlAlchemyRepository(db, Requirement),
        test_cases=SqlAlchemyRepository(db, TestCase),
        compliance_mappings=SqlAlchemyRepository(db, ComplianceMapping),
        explanations=SqlAlchemyRepository(db, AiExplanation),
    )


def in_memory_repositories() -> Repositories:
    return Repositories(
        projects=InMemoryRepository(Project),
        documents=InMemoryRepository(Document),
        requirements=InMemoryRepository(Requirement),
        test_cases=InMemoryRepository(TestCase),
        compliance_mappings=InMemoryRepository(ComplianceMapping),
        explanations=InMemoryRepository(AiExplanation),
    )


__all__ = [
    "BaseRepository",
    "InMemoryRepository",
    "Repositories",
    "SqlAlchemyRepository",
    "coerce_id",
    "in_memory_repositories",
    "sqlalchemy_repositories",
]
