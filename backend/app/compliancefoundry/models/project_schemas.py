"""ComplianceFoundry - Project Schemas

项目、文档、需求、用例、合规映射、AI 解释的 Pydantic 数据模型。
对外字段统一使用 camelCase（complianceFramework、testCaseId ...）。
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """camelCase 别名基类"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class TimestampedModel(CamelModel):
    """统一把时间序列化为 UTC ISO 字符串"""

    @field_serializer(
        "created_at", "uploaded_at", "extracted_at", "generated_at",
        check_fields=False,
    )
    def serialize_dt(self, dt: datetime | None, _info):
        if dt is None:
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.isoformat().replace("+00:00", "Z")


class StepStatus(str, Enum):
    """流水线步骤状态"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# ============================================================
# Request Schemas
# ============================================================

class ProjectCreate(CamelModel):
    """创建项目请求"""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    compliance_framework: str = Field(..., min_length=1, max_length=100)
    export_format: str = Field(..., min_length=1, max_length=50)


class ChatRequest(CamelModel):
    """对话请求"""
    message: str = Field(..., min_length=1)


# ============================================================
# Response Schemas
# ============================================================

class ProjectResponse(TimestampedModel):
    """项目响应"""
    id: UUID
    name: str
    description: Optional[str] = None
    compliance_framework: str
    export_format: str
    status: str
    created_at: datetime


class DocumentResponse(TimestampedModel):
    """文档响应（不回传正文）"""
    id: UUID
    project_id: UUID
    filename: str
    original_name: str
    file_size: int
    mime_type: str
    uploaded_at: datetime


class DocumentUploadResponse(CamelModel):
    """批量上传响应"""
    documents: list[DocumentResponse]
    message: str


class RequirementResponse(TimestampedModel):
    """需求响应"""
    id: UUID
    project_id: UUID
    requirement_id: str
    text: str
    type: str
    priority: str
    compliance_section: Optional[str] = None
    confidence: int
    extracted_at: datetime


class TestCaseResponse(TimestampedModel):
    """测试用例响应"""
    __test__ = False

    id: UUID
    project_id: UUID
    requirement_id: UUID
    test_case_id: str
    title: str
    type: str
    priority: str
    preconditions: Optional[str] = None
    test_steps: Optional[str] = None
    expected_result: Optional[str] = None
    compliance_section: Optional[str] = None
    is_edge_case: bool = False
    generated_at: datetime


class ComplianceMappingResponse(CamelModel):
    """合规映射响应"""
    id: UUID
    project_id: UUID
    requirement_id: UUID
    section: str
    description: str
    confidence: int
    reasoning: Optional[str] = None
    framework: str


class AiExplanationResponse(TimestampedModel):
    """AI 解释响应"""
    id: UUID
    project_id: UUID
    type: str
    entity_id: str
    reasoning: str
    confidence: int
    model_used: str
    processing_time: Optional[int] = None
    created_at: datetime


class ProjectSummary(CamelModel):
    """项目汇总指标"""
    requirements_count: int
    test_cases_count: int
    compliance_coverage: int
    edge_cases_count: int


class TraceabilityRow(CamelModel):
    """追踪矩阵的一行（每个需求一行）"""
    requirement: RequirementResponse
    test_cases: list[TestCaseResponse]
    compliance_mappings: list[ComplianceMappingResponse]
    coverage: int
    test_case_count: int
    edge_case_count: int


class ProjectResults(CamelModel):
    """项目结果"""
    project: ProjectResponse
    summary: ProjectSummary
    requirements: list[RequirementResponse]
    test_cases: list[TestCaseResponse]
    compliance_mappings: list[ComplianceMappingResponse]
    explanations: list[AiExplanationResponse]
    traceability_matrix: list[TraceabilityRow]


class ProcessingStatus(CamelModel):
    """流水线状态事件（SSE 帧内容）"""
    step: str
    status: StepStatus
    message: str
    duration: Optional[int] = None
    summary: Optional[ProjectSummary] = None

    def to_frame(self) -> str:
        """序列化为一个 SSE 帧: data: <json>\\n\\n"""
        payload = self.model_dump_json(by_alias=True, exclude_none=True)
        return f"data: {payload}\n\n"


class ChatResponse(CamelModel):
    """对话响应"""
    message: str
    suggestions: list[str] = Field(default_factory=list)
