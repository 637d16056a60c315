"""ComplianceFoundry - Export Routes

测试用例导出：csv / xml / word
"""
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from compliancefoundry.api.deps.pipeline_deps import get_repositories, require_project
from compliancefoundry.repositories import Repositories
from compliancefoundry.services.export_service import ExportFormat, export_test_cases

router = APIRouter(prefix="/projects", tags=["export"])


@router.get("/{project_id}/export/{export_format}")
def export_project(
    project_id: str,
    export_format: str,
    repos: Repositories = Depends(get_repositories),
):
    project = require_project(repos, project_id)
    fmt = ExportFormat.parse(export_format)
    if fmt is None:
        raise HTTPException(status_code=400, detail="Unsupported export format")

    exported = export_test_cases(
        fmt,
        project,
        repos.requirements.list_by_project(project.id),
        repos.test_cases.list_by_project(project.id),
    )
    return Response(
        content=exported.content,
        media_type=exported.media_type,
        headers={"Content-Disposition": exported.content_disposition},
    )
