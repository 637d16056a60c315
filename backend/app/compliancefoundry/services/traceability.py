"""ComplianceFoundry - Traceability & Coverage

基于仓储当前内容的纯读模型：追踪矩阵 + 汇总指标。
无副作用，实体不变时重复调用结果一致。
"""
from __future__ import annotations

import math
from typing import Any, Sequence

from compliancefoundry.database.models import ComplianceMapping, Requirement, TestCase
from compliancefoundry.models.project_schemas import (
    AiExplanationResponse,
    ComplianceMappingResponse,
    ProjectResponse,
    ProjectResults,
    ProjectSummary,
    RequirementResponse,
    TestCaseResponse,
    TraceabilityRow,
)
from compliancefoundry.repositories import Repositories


def compliance_coverage(mapping_count: int, requirement_count: int) -> int:
    """映射数 / 需求数 × 100，四舍五入（half up）

    按数量之比计算，而非"已覆盖需求占比"，一个需求有多条映射时可以超过 100。
    没有需求时为 0。
    """
    if requirement_count <= 0:
        return 0
    return int(math.floor(mapping_count * 100 / requirement_count + 0.5))


def compute_summary(
    requirements: Sequence[Requirement],
    test_cases: Sequence[TestCase],
    compliance_mappings: Sequence[ComplianceMapping],
) -> ProjectSummary:
    return ProjectSummary(
        requirements_count=len(requirements),
        test_cases_count=len(test_cases),
        compliance_coverage=compliance_coverage(len(compliance_mappings), len(requirements)),
        edge_cases_count=sum(1 for tc in test_cases if tc.is_edge_case),
    )


def build_traceability_matrix(
    requirements: Sequence[Requirement],
    test_cases: Sequence[TestCase],
    compliance_mappings: Sequence[ComplianceMapping],
) -> list[TraceabilityRow]:
    """每个需求一行；有任一关联用例则 coverage=100，否则 0"""
    rows = []
    for requirement in requirements:
        linked_cases = [tc for tc in test_cases if tc.requirement_id == requirement.id]
        linked_mappings = [cm for cm in compliance_mappings if cm.requirement_id == requirement.id]
        rows.append(TraceabilityRow(
            requirement=RequirementResponse.model_validate(requirement),
            test_cases=[TestCaseResponse.model_validate(tc) for tc in linked_cases],
            compliance_mappings=[ComplianceMappingResponse.model_validate(cm) for cm in linked_mappings],
            coverage=100 if linked_cases else 0,
            test_case_count=len(linked_cases),
            edge_case_count=sum(1 for tc in linked_cases if tc.is_edge_case),
        ))
    return rows


def load_project_results(repos: Repositories, project_id: Any) -> ProjectResults | None:
    """读取项目全部实体并组装结果；项目不存在返回 None"""
    project = repos.projects.get(project_id)
    if project is None:
        return None

    requirements = repos.requirements.list_by_project(project.id)
    test_cases = repos.test_cases.list_by_project(project.id)
    mappings = repos.compliance_mappings.list_by_project(project.id)
    explanations = repos.explanations.list_by_project(project.id)

    return ProjectResults(
        project=ProjectResponse.model_validate(project),
        summary=compute_summary(requirements, test_cases, mappings),
        requirements=[RequirementResponse.model_validate(r) for r in requirements],
        test_cases=[TestCaseResponse.model_validate(tc) for tc in test_cases],
        compliance_mappings=[ComplianceMappingResponse.model_validate(cm) for cm in mappings],
        explanations=[AiExplanationResponse.model_validate(e) for e in explanations],
        traceability_matrix=build_traceability_matrix(requirements, test_cases, mappings),
    )
