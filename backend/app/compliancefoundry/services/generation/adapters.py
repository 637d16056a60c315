"""ComplianceFoundry - Generation Adapters

生成式模型的边界：
- ExtractionAdapter: 文档文本 + 框架 → 有序需求描述
- GenerationAdapter: 单个需求 + 框架 → 用例草稿 + 合规映射草稿

草稿中的可选字段（confidence、is_edge_case 等）保持 None，
由流水线统一补默认值，适配器不自行编造。
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from compliancefoundry.core.config import settings
from compliancefoundry.database.models import Requirement
from compliancefoundry.services.ai_service import (
    AIService,
    AIServiceError,
    GenerationConfig,
    is_json_response,
    parse_json_response,
)
from compliancefoundry.services.generation.prompts import AIStep, render

logger = logging.getLogger(__name__)


class AdapterError(Exception):
    """适配器调用失败（上游结果不可用）"""
    pass


# ============================================================
# 草稿数据结构
# ============================================================

@dataclass
class ExtractedRequirement:
    requirement_id: str
    text: str
    type: str
    priority: str
    compliance_section: Optional[str] = None
    confidence: Optional[float] = None


@dataclass
class DraftTestCase:
    title: str
    type: str
    priority: str
    preconditions: Optional[str] = None
    test_steps: Optional[str] = None
    expected_result: Optional[str] = None
    compliance_section: Optional[str] = None
    is_edge_case: Optional[bool] = None
    reasoning: Optional[str] = None
    confidence: Optional[float] = None


@dataclass
class DraftComplianceMapping:
    section: str
    description: str
    confidence: Optional[float] = None
    reasoning: Optional[str] = None


@dataclass
class GenerationResult:
    test_cases: list[DraftTestCase] = field(default_factory=list)
    compliance_mappings: list[DraftComplianceMapping] = field(default_factory=list)
    processing_time: Optional[int] = None  # 毫秒


# ============================================================
# 能力接口
# ============================================================

class ExtractionAdapter(Protocol):
    model_name: str

    async def extract(self, document_text: str, framework: str) -> list[ExtractedRequirement]:
        ...


class GenerationAdapter(Protocol):
    model_name: str

    async def generate(self, requirement: Requirement, framework: str) -> GenerationResult:
        ...


# ============================================================
# 字段清洗
# ============================================================

def _text(value: Any) -> Optional[str]:
    """多行内容（列表）拼接为文本"""
    if value is None:
        return None
    if isinstance(value, list):
        return "\n".join(str(v) for v in value)
    return str(value)


def _number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _flag(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def parse_requirements(payload: Any) -> list[ExtractedRequirement]:
    """把抽取结果转为需求描述列表，缺失的编号按位置补 REQ-NNN"""
    if isinstance(payload, dict) and isinstance(payload.get("requirements"), list):
        payload = payload["requirements"]
    if not isinstance(payload, list):
        raise AdapterError("Requirement extraction response is not a JSON array")

    requirements = []
    for index, item in enumerate(payload):
        if not isinstance(item, dict) or not item.get("text"):
            raise AdapterError(f"Malformed requirement at position {index + 1}")
        requirements.append(ExtractedRequirement(
            requirement_id=str(item.get("requirementId") or f"REQ-{index + 1:03d}"),
            text=str(item["text"]),
            type=str(item.get("type") or "Functional"),
            priority=str(item.get("priority") or "Medium"),
            compliance_section=item.get("complianceSection") or None,
            confidence=_number(item.get("confidence")),
        ))

    if not requirements:
        raise AdapterError("No requirements could be extracted from the documents")
    return requirements


def parse_generation(payload: Any) -> GenerationResult:
    """把生成结果转为用例 / 合规映射草稿"""
    if not isinstance(payload, dict):
        raise AdapterError("Test case generation response is not a JSON object")

    test_cases = []
    for item in payload.get("testCases") or []:
        if not isinstance(item, dict) or not item.get("title"):
            raise AdapterError("Malformed test case in generation response")
        test_cases.append(DraftTestCase(
            title=str(item["title"]),
            type=str(item.get("type") or "Functional"),
            priority=str(item.get("priority") or "Medium"),
            preconditions=_text(item.get("preconditions")),
            test_steps=_text(item.get("testSteps")),
            expected_result=_text(item.get("expectedResult")),
            compliance_section=item.get("complianceSection") or None,
            is_edge_case=_flag(item.get("isEdgeCase")),
            reasoning=item.get("reasoning") or None,
            confidence=_number(item.get("confidence")),
        ))

    mappings = []
    for item in payload.get("complianceMappings") or []:
        if not isinstance(item, dict) or not item.get("section"):
            raise AdapterError("Malformed compliance mapping in generation response")
        mappings.append(DraftComplianceMapping(
            section=str(item["section"]),
            description=str(item.get("description") or ""),
            confidence=_number(item.get("confidence")),
            reasoning=item.get("reasoning") or None,
        ))

    return GenerationResult(test_cases=test_cases, compliance_mappings=mappings)


# ============================================================
# LLM 实现
# ============================================================

class LLMExtractionAdapter:
    """基于 AIService 的需求抽取"""

    def __init__(self, ai: Optional[AIService] = None, model: Optional[str] = None):
        self.ai = ai or AIService()
        self.model_name = model or settings.AI_MODEL

    async def extract(self, document_text: str, framework: str) -> list[ExtractedRequirement]:
        start_time = time.time()
        system_prompt, prompt = render(
            AIStep.REQUIREMENT_EXTRACTION,
            framework=framework,
            document=document_text,
        )
        try:
            content = await self.ai.complete(
                prompt,
                system_prompt=system_prompt,
                gen_config=GenerationConfig.from_settings(model=self.model_name),
                validator=is_json_response,
            )
            requirements = parse_requirements(parse_json_response(content))
        except AIServiceError as e:
            raise AdapterError(f"Failed to extract requirements: {e}") from e

        logger.info(
            f"需求抽取完成: {len(requirements)} 条, 耗时 {int((time.time() - start_time) * 1000)}ms"
        )
        return requirements


class LLMGenerationAdapter:
    """基于 AIService 的用例 / 合规映射生成"""

    def __init__(self, ai: Optional[AIService] = None, model: Optional[str] = None):
        self.ai = ai or AIService()
        self.model_name = model or settings.AI_MODEL

    async def generate(self, requirement: Requirement, framework: str) -> GenerationResult:
        start_time = time.time()
        system_prompt, prompt = render(
            AIStep.TEST_GENERATION,
            framework=framework,
            requirement_id=requirement.requirement_id,
            type=requirement.type,
            priority=requirement.priority,
            text=requirement.text,
            compliance_section=requirement.compliance_section or "Not specified",
        )
        try:
            content = await self.ai.complete(
                prompt,
                system_prompt=system_prompt,
                gen_config=GenerationConfig.from_settings(model=self.model_name, json_mode=True),
                validator=is_json_response,
            )
            result = parse_generation(parse_json_response(content))
        except AIServiceError as e:
            raise AdapterError(f"AI provider error for {requirement.requirement_id}: {e}") from e

        result.processing_time = int((time.time() - start_time) * 1000)
        logger.info(
            f"用例生成完成: {requirement.requirement_id} → {len(result.test_cases)} 条, "
            f"耗时 {result.processing_time}ms"
        )
        return result
