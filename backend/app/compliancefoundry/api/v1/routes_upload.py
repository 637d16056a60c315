"""ComplianceFoundry - Document Upload Routes

文档上传 API 路由：校验、保存临时文件、提取文本、入库。
单个文件失败只跳过该文件。
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from compliancefoundry.api.deps.pipeline_deps import (
    get_document_parser,
    get_repositories,
    require_project,
)
from compliancefoundry.core.config import settings
from compliancefoundry.models.project_schemas import DocumentResponse, DocumentUploadResponse
from compliancefoundry.repositories import Repositories
from compliancefoundry.services.document_parser import (
    DocumentParseError,
    DocumentParser,
    DocumentValidationError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects", tags=["documents"])


@router.post("/{project_id}/documents", response_model=DocumentUploadResponse)
async def upload_documents(
    project_id: str,
    documents: Optional[List[UploadFile]] = File(default=None),
    repos: Repositories = Depends(get_repositories),
    parser: DocumentParser = Depends(get_document_parser),
):
    """
    上传项目文档

    支持的文件类型：PDF、DOCX、DOC、TXT
    单个文件最大 10MB，一次最多 10 个文件
    """
    project = require_project(repos, project_id)

    if not documents:
        raise HTTPException(status_code=400, detail="No files uploaded")
    if len(documents) > settings.MAX_UPLOAD_FILES:
        raise HTTPException(
            status_code=400,
            detail=f"Too many files; at most {settings.MAX_UPLOAD_FILES} per upload",
        )

    saved = []
    for upload in documents:
        original_name = upload.filename or "document"
        content = await upload.read()
        try:
            parser.validate_file(len(content), upload.content_type)
        except DocumentValidationError as e:
            logger.warning(f"跳过文件 {original_name}: {e}")
            continue

        file_path = parser.save_file(content, original_name)
        try:
            parsed = parser.parse_document(file_path, upload.content_type)
        except DocumentParseError as e:
            logger.warning(f"文档解析失败，跳过 {original_name}: {e}")
            continue
        finally:
            parser.delete_file(file_path)

        document = repos.documents.create(
            project_id=project.id,
            filename=file_path.name,
            original_name=original_name,
            file_size=len(content),
            mime_type=upload.content_type,
            content=parsed.content,
        )
        saved.append(document)

    if not saved:
        raise HTTPException(status_code=400, detail="No documents could be processed")

    logger.info(f"项目 {project.id} 上传文档 {len(saved)}/{len(documents)} 个")
    return DocumentUploadResponse(
        documents=[DocumentResponse.model_validate(doc) for doc in saved],
        message=f"Successfully uploaded {len(saved)} document(s)",
    )
