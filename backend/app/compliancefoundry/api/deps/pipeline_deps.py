"""ComplianceFoundry - 流水线依赖

仓储、生成适配器、对话服务、文档解析器的依赖注入入口。
测试通过 app.dependency_overrides 替换为假实现。
"""
from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from compliancefoundry.database.config import get_db
from compliancefoundry.database.models import Project
from compliancefoundry.repositories import Repositories, sqlalchemy_repositories
from compliancefoundry.services.chat_service import ChatService
from compliancefoundry.services.document_parser import DocumentParser, document_parser
from compliancefoundry.services.generation.adapters import (
    ExtractionAdapter,
    GenerationAdapter,
    LLMExtractionAdapter,
    LLMGenerationAdapter,
)


def get_repositories(db: Session = Depends(get_db)) -> Repositories:
    return sqlalchemy_repositories(db)


def get_extraction_adapter() -> ExtractionAdapter:
    return LLMExtractionAdapter()


def get_generation_adapter() -> GenerationAdapter:
    return LLMGenerationAdapter()


def get_chat_service() -> ChatService:
    return ChatService()


def get_document_parser() -> DocumentParser:
    return document_parser


def require_project(repos: Repositories, project_id: str) -> Project:
    """按 id 读取项目，不存在（或 id 非法）时 404"""
    project = repos.projects.get(project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return project
