"""ComplianceFoundry - Processing Routes

启动生成流水线，以 Server-Sent Events 推送步骤状态。
"""
from contextlib import aclosing

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from compliancefoundry.api.deps.pipeline_deps import (
    get_extraction_adapter,
    get_generation_adapter,
    get_repositories,
    require_project,
)
from compliancefoundry.repositories import Repositories
from compliancefoundry.services.generation.adapters import ExtractionAdapter, GenerationAdapter
from compliancefoundry.services.pipeline.orchestrator import PipelineOrchestrator

router = APIRouter(prefix="/projects", tags=["processing"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.post("/{project_id}/process")
async def process_project(
    project_id: str,
    request: Request,
    repos: Repositories = Depends(get_repositories),
    extractor: ExtractionAdapter = Depends(get_extraction_adapter),
    generator: GenerationAdapter = Depends(get_generation_adapter),
):
    """
    处理项目文档并生成测试用例

    每个事件一帧: data: {"step": ..., "status": ..., "message": ...}
    最后一帧为 processing_completed（带 summary）或 processing_failed。
    """
    project = require_project(repos, project_id)
    if not repos.documents.list_by_project(project.id):
        raise HTTPException(status_code=400, detail="No documents found for processing")

    orchestrator = PipelineOrchestrator(repos, extractor, generator)

    async def event_generator():
        async with aclosing(orchestrator.run(project.id, is_disconnected=request.is_disconnected)) as events:
            async for event in events:
                yield event.to_frame()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
