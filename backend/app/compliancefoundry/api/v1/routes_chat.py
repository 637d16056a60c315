"""ComplianceFoundry - Chat Routes"""
from fastapi import APIRouter, Depends

from compliancefoundry.api.deps.pipeline_deps import (
    get_chat_service,
    get_repositories,
    require_project,
)
from compliancefoundry.models.project_schemas import ChatRequest, ChatResponse
from compliancefoundry.repositories import Repositories
from compliancefoundry.services.chat_service import ChatService

router = APIRouter(prefix="/projects", tags=["chat"])


@router.post("/{project_id}/chat", response_model=ChatResponse)
async def chat(
    project_id: str,
    req: ChatRequest,
    repos: Repositories = Depends(get_repositories),
    chat_service: ChatService = Depends(get_chat_service),
):
    """基于项目上下文的问答"""
    project = require_project(repos, project_id)
    return await chat_service.reply(
        project,
        req.message,
        repos.requirements.list_by_project(project.id),
        repos.test_cases.list_by_project(project.id),
        repos.compliance_mappings.list_by_project(project.id),
    )
