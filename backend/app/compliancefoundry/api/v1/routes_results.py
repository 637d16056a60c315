"""ComplianceFoundry - Results Routes"""
from fastapi import APIRouter, Depends, HTTPException

from compliancefoundry.api.deps.pipeline_deps import get_repositories
from compliancefoundry.models.project_schemas import ProjectResults
from compliancefoundry.repositories import Repositories
from compliancefoundry.services.traceability import load_project_results

router = APIRouter(prefix="/projects", tags=["results"])


@router.get("/{project_id}/results", response_model=ProjectResults)
def get_project_results(
    project_id: str,
    repos: Repositories = Depends(get_repositories),
):
    """项目全部实体、汇总指标与追踪矩阵"""
    results = load_project_results(repos, project_id)
    if results is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return results
