"""ComplianceFoundry - Chat Service

项目问答助手：以需求 / 用例 / 映射统计为上下文调用对话模型。
模型不可用时降级为道歉消息，不向调用方抛错。
"""
from __future__ import annotations

import logging
from typing import Optional, Sequence

from compliancefoundry.core.config import settings
from compliancefoundry.database.models import ComplianceMapping, Project, Requirement, TestCase
from compliancefoundry.models.project_schemas import ChatResponse
from compliancefoundry.services.ai_service import AIService, AIServiceError, GenerationConfig
from compliancefoundry.services.generation.prompts import AIStep, render

logger = logging.getLogger(__name__)

SUMMARY_REQUIREMENTS = 5
SUMMARY_TEXT_LENGTH = 100

EMPTY_ANSWER = (
    "I apologize, but I'm having trouble processing your question right now. "
    "Please try rephrasing or ask about specific requirements or test cases."
)
APOLOGY = (
    "I apologize, but I'm experiencing technical difficulties. "
    "Please try again later or contact support if the issue persists."
)


def default_suggestions(framework: str) -> list[str]:
    return [
        "Explain the compliance mapping for a specific requirement",
        "What edge cases were identified?",
        f"Show me the test coverage for {framework} requirements",
        "Why was this requirement marked as high priority?",
    ]


def summarize_requirements(requirements: Sequence[Requirement]) -> str:
    """前 5 条需求，每条截取前 100 个字符"""
    return "\n".join(
        f"{req.requirement_id}: {req.text[:SUMMARY_TEXT_LENGTH]}..."
        for req in requirements[:SUMMARY_REQUIREMENTS]
    )


class ChatService:
    """项目问答"""

    def __init__(self, ai: Optional[AIService] = None, model: Optional[str] = None):
        self.ai = ai or AIService()
        self.model_name = model or settings.AI_CHAT_MODEL

    async def reply(
        self,
        project: Project,
        message: str,
        requirements: Sequence[Requirement],
        test_cases: Sequence[TestCase],
        compliance_mappings: Sequence[ComplianceMapping],
    ) -> ChatResponse:
        framework = project.compliance_framework
        system_prompt, prompt = render(
            AIStep.CHAT,
            framework=framework,
            requirements_count=len(requirements),
            test_cases_count=len(test_cases),
            mappings_count=len(compliance_mappings),
            requirements_summary=summarize_requirements(requirements),
            message=message,
        )
        try:
            content = await self.ai.complete(
                prompt,
                system_prompt=system_prompt,
                gen_config=GenerationConfig.from_settings(model=self.model_name),
            )
        except AIServiceError as e:
            logger.error(f"对话模型调用失败: project={project.id}: {e}")
            return ChatResponse(message=APOLOGY, suggestions=[])

        return ChatResponse(
            message=(content or "").strip() or EMPTY_ANSWER,
            suggestions=default_suggestions(framework),
        )
