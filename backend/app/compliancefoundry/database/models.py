"""ComplianceFoundry - Database Models

SQLAlchemy 数据模型定义

所有实体都带有 seq_id（插入顺序），列表查询一律按 seq_id 排序，
保证追踪矩阵与导出结果的顺序稳定。
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID

from compliancefoundry.database.config import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================
# 枚举类型
# ============================================================

class ProjectStatus(str, PyEnum):
    """项目状态"""
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ExplanationType(str, PyEnum):
    """AI 解释类型"""
    REQUIREMENT_EXTRACTION = "requirement_extraction"
    TEST_GENERATION = "test_generation"
    COMPLIANCE_MAPPING = "compliance_mapping"


# ============================================================
# 数据模型
# ============================================================

class Project(Base):
    """项目模型"""
    __tablename__ = "projects"
    timestamp_field = "created_at"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    seq_id = Column(Integer, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    compliance_framework = Column(String(100), nullable=False)  # HIPAA, ISO13485, FDA
    export_format = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False, default=ProjectStatus.PROCESSING.value)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class Document(Base):
    """上传文档模型"""
    __tablename__ = "documents"
    timestamp_field = "uploaded_at"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    seq_id = Column(Integer, nullable=False, index=True)
    project_id = Column(UUID(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True)
    filename = Column(String(255), nullable=False)
    original_name = Column(String(255), nullable=False)
    file_size = Column(Integer, nullable=False)
    mime_type = Column(String(255), nullable=False)
    content = Column(Text, nullable=True)  # 提取的纯文本
    uploaded_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class Requirement(Base):
    """需求模型"""
    __tablename__ = "requirements"
    timestamp_field = "extracted_at"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    seq_id = Column(Integer, nullable=False, index=True)
    project_id = Column(UUID(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True)
    requirement_id = Column(String(50), nullable=False)  # REQ-001, REQ-002 ...
    text = Column(Text, nullable=False)
    type = Column(String(100), nullable=False)  # Security, Data Privacy, Audit ...
    priority = Column(String(50), nullable=False)  # High, Medium, Low
    compliance_section = Column(String(255), nullable=True)  # HIPAA §164.312(a)(1)
    confidence = Column(Integer, nullable=False, default=0)  # 0-100
    extracted_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class TestCase(Base):
    """测试用例模型"""
    __tablename__ = "test_cases"
    __test__ = False  # 避免 pytest 误收集
    timestamp_field = "generated_at"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    seq_id = Column(Integer, nullable=False, index=True)
    project_id = Column(UUID(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True)
    requirement_id = Column(UUID(as_uuid=True), ForeignKey("requirements.id"), nullable=False, index=True)
    test_case_id = Column(String(50), nullable=False)  # TC-001, TC-002 ...
    title = Column(String(500), nullable=False)
    type = Column(String(100), nullable=False)
    priority = Column(String(50), nullable=False)
    preconditions = Column(Text, nullable=True)
    test_steps = Column(Text, nullable=True)
    expected_result = Column(Text, nullable=True)
    compliance_section = Column(String(255), nullable=True)
    is_edge_case = Column(Boolean, nullable=False, default=False)
    generated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class ComplianceMapping(Base):
    """合规映射模型"""
    __tablename__ = "compliance_mappings"
    timestamp_field = None

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    seq_id = Column(Integer, nullable=False, index=True)
    project_id = Column(UUID(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True)
    requirement_id = Column(UUID(as_uuid=True), ForeignKey("requirements.id"), nullable=False, index=True)
    section = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    confidence = Column(Integer, nullable=False)  # 0-100
    reasoning = Column(Text, nullable=True)
    framework = Column(String(100), nullable=False)


class AiExplanation(Base):
    """AI 解释（审计轨迹，只追加）"""
    __tablename__ = "ai_explanations"
    timestamp_field = "created_at"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    seq_id = Column(Integer, nullable=False, index=True)
    project_id = Column(UUID(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True)
    type = Column(String(50), nullable=False)  # ExplanationType
    entity_id = Column(String(100), nullable=False)  # Requirement.id 或 TestCase.test_case_id
    reasoning = Column(Text, nullable=False)
    confidence = Column(Integer, nullable=False)
    model_used = Column(String(100), nullable=False)
    processing_time = Column(Integer, nullable=True)  # 毫秒
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
