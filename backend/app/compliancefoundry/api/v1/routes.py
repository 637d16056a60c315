from fastapi import APIRouter

from compliancefoundry.api.v1.routes_chat import router as chat_router
from compliancefoundry.api.v1.routes_export import router as export_router
from compliancefoundry.api.v1.routes_processing import router as processing_router
from compliancefoundry.api.v1.routes_projects import router as projects_router
from compliancefoundry.api.v1.routes_results import router as results_router
from compliancefoundry.api.v1.routes_upload import router as upload_router

# v1 统一入口：所有 v1 API 都从 /api/v1 开始
router = APIRouter(prefix="/api/v1")

router.include_router(projects_router)
router.include_router(upload_router)
router.include_router(processing_router)
router.include_router(results_router)
router.include_router(export_router)
router.include_router(chat_router)
