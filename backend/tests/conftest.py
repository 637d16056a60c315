"""
ComplianceFoundry 测试配置

统一管理测试数据库初始化与依赖覆盖；生成式模型统一替换为可控的假适配器。
"""
from typing import Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from compliancefoundry.api.deps.pipeline_deps import (
    get_document_parser,
    get_extraction_adapter,
    get_generation_adapter,
)
from compliancefoundry.database.config import Base, get_db
from compliancefoundry.database import models  # noqa: F401 - 注册模型
from compliancefoundry.main import app
from compliancefoundry.services.document_parser import DocumentParser
from compliancefoundry.services.generation.adapters import (
    AdapterError,
    DraftComplianceMapping,
    DraftTestCase,
    ExtractedRequirement,
    GenerationResult,
)

# 使用文件数据库进行测试（内存数据库有连接隔离问题）
SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    """覆盖数据库依赖"""
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


# ============================================================
# 假适配器
# ============================================================

class FakeExtractionAdapter:
    """按给定列表返回需求；error 非空时抛出"""
    model_name = "fake-extractor"

    def __init__(self, requirements: Optional[list] = None, error: Optional[Exception] = None):
        self.requirements = requirements if requirements is not None else default_requirements()
        self.error = error
        self.calls = []

    async def extract(self, document_text, framework):
        self.calls.append((document_text, framework))
        if self.error is not None:
            raise self.error
        return list(self.requirements)


class FakeGenerationAdapter:
    """每个需求生成 cases_per_requirement 条用例与一条映射；fail_on 中的需求抛错"""
    model_name = "fake-generator"

    def __init__(
        self,
        cases_per_requirement: int = 2,
        fail_on: tuple = (),
        mappings_per_requirement: int = 1,
        edge_case_every: int = 0,
    ):
        self.cases_per_requirement = cases_per_requirement
        self.mappings_per_requirement = mappings_per_requirement
        self.fail_on = set(fail_on)
        self.edge_case_every = edge_case_every
        self.calls = []

    async def generate(self, requirement, framework):
        self.calls.append(requirement.requirement_id)
        if requirement.requirement_id in self.fail_on:
            raise AdapterError(f"provider exploded on {requirement.requirement_id}")

        test_cases = []
        for i in range(self.cases_per_requirement):
            test_cases.append(DraftTestCase(
                title=f"Verify {requirement.requirement_id} case {i + 1}",
                type="Functional",
                priority=requirement.priority,
                preconditions="System is available",
                test_steps="1. Do the thing\n2. Check the thing",
                expected_result="The thing is done",
                compliance_section=requirement.compliance_section,
                is_edge_case=bool(self.edge_case_every) and (i + 1) % self.edge_case_every == 0,
                reasoning=f"Covers {requirement.requirement_id}",
                confidence=90,
            ))
        mappings = [
            DraftComplianceMapping(
                section=f"{framework} §164.312({chr(ord('a') + i)})",
                description=f"Mapping for {requirement.requirement_id}",
                confidence=88,
                reasoning="Access control safeguard",
            )
            for i in range(self.mappings_per_requirement)
        ]
        return GenerationResult(test_cases=test_cases, compliance_mappings=mappings, processing_time=5)


def default_requirements() -> list:
    return [
        ExtractedRequirement(
            requirement_id="REQ-001",
            text="The system must encrypt PHI at rest.",
            type="Security",
            priority="High",
            compliance_section="§164.312(a)(2)(iv)",
            confidence=92,
        ),
        ExtractedRequirement(
            requirement_id="REQ-002",
            text="The system shall log every access to patient records.",
            type="Audit",
            priority="Medium",
        ),
        ExtractedRequirement(
            requirement_id="REQ-003",
            text="Users must re-authenticate after 15 minutes of inactivity.",
            type="Security",
            priority="High",
            confidence=70,
        ),
    ]


# ============================================================
# Fixtures
# ============================================================

@pytest.fixture
def db():
    """提供数据库会话"""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def fake_extractor():
    return FakeExtractionAdapter()


@pytest.fixture
def fake_generator():
    return FakeGenerationAdapter()


@pytest.fixture(autouse=True)
def apply_overrides(fake_extractor, fake_generator, tmp_path):
    """每个测试自动应用依赖覆盖，并在结束后清理"""
    old_overrides = app.dependency_overrides.copy()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_extraction_adapter] = lambda: fake_extractor
    app.dependency_overrides[get_generation_adapter] = lambda: fake_generator
    app.dependency_overrides[get_document_parser] = lambda: DocumentParser(upload_dir=str(tmp_path / "uploads"))

    yield

    app.dependency_overrides = old_overrides


@pytest.fixture(autouse=True)
def setup_database():
    """每个测试前创建所有表，测试后清理"""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    """提供测试客户端"""
    from fastapi.testclient import TestClient
    return TestClient(app)


@pytest.fixture
def project_payload():
    return {
        "name": "EHR Portal",
        "description": "Patient portal compliance review",
        "complianceFramework": "HIPAA",
        "exportFormat": "CSV",
    }


@pytest.fixture
def project_id(client, project_payload):
    """已创建的项目 id"""
    response = client.post("/api/v1/projects", json=project_payload)
    assert response.status_code == 201
    return response.json()["id"]


@pytest.fixture
def uploaded_project_id(client, project_id):
    """已上传一个文本文档的项目 id"""
    response = client.post(
        f"/api/v1/projects/{project_id}/documents",
        files=[("documents", ("policy.txt", b"The system must encrypt PHI at rest.", "text/plain"))],
    )
    assert response.status_code == 200
    return project_id


def parse_sse(body: str) -> list:
    """把 SSE 响应体拆成事件字典列表"""
    import json

    events = []
    for frame in body.split("\n\n"):
        if frame.startswith("data: "):
            events.append(json.loads(frame[len("data: "):]))
    return events
