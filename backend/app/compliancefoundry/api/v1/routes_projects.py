"""ComplianceFoundry - Project API Routes

项目创建与查询
"""
from fastapi import APIRouter, Depends

from compliancefoundry.api.deps.pipeline_deps import get_repositories, require_project
from compliancefoundry.database.models import ProjectStatus
from compliancefoundry.models.project_schemas import ProjectCreate, ProjectResponse
from compliancefoundry.repositories import Repositories

router = APIRouter(prefix="/projects", tags=["projects"])


@router.post("", response_model=ProjectResponse, status_code=201)
def create_project(
    req: ProjectCreate,
    repos: Repositories = Depends(get_repositories),
):
    """创建项目（初始状态 processing）"""
    return repos.projects.create(
        name=req.name,
        description=req.description,
        compliance_framework=req.compliance_framework,
        export_format=req.export_format,
        status=ProjectStatus.PROCESSING.value,
    )


@router.get("/{project_id}", response_model=ProjectResponse)
def get_project(
    project_id: str,
    repos: Repositories = Depends(get_repositories),
):
    """获取项目详情"""
    return require_project(repos, project_id)
