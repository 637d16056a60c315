"""ComplianceFoundry - Pipeline Orchestrator

单个项目的一次完整生成运行：

    parsing → extraction → mapping → generation → processing_completed

Design decisions:
- 抽取失败（或抽取完成前的任何错误）对整个运行是致命的：项目置为 failed，
  推送终止事件后立即停止
- 逐个需求串行生成；单个需求失败只记录一条 confidence=0 的解释并继续
- 用例编号 TC-NNN 由本次运行独占的 TestCaseIdSequence 分配，显式传递，
  跨需求连续递增
- 每个需求之间检查消费方是否已断开，断开后不再发起适配器调用
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from compliancefoundry.core.config import settings
from compliancefoundry.database.models import ExplanationType, Project, ProjectStatus, Requirement
from compliancefoundry.models.project_schemas import ProcessingStatus, StepStatus
from compliancefoundry.repositories import Repositories
from compliancefoundry.services.generation.adapters import (
    AdapterError,
    ExtractionAdapter,
    GenerationAdapter,
    GenerationResult,
)
from compliancefoundry.services.traceability import compute_summary

logger = logging.getLogger(__name__)

DisconnectCheck = Callable[[], Awaitable[bool]]


class PipelineStep(str, Enum):
    """流水线步骤"""
    PARSING = "parsing"
    EXTRACTION = "extraction"
    MAPPING = "mapping"
    GENERATION = "generation"
    COMPLETED = "processing_completed"
    FAILED = "processing_failed"


TERMINAL_STEPS = frozenset({PipelineStep.COMPLETED.value, PipelineStep.FAILED.value})


class ProjectNotFoundError(LookupError):
    """项目不存在"""
    pass


class PipelineError(Exception):
    """致命错误：运行终止"""
    pass


class PipelineAborted(Exception):
    """消费方已断开，运行中止"""
    pass


@dataclass
class TestCaseIdSequence:
    """单次运行内的用例编号计数器（TC-001, TC-002 ...）"""
    __test__ = False

    last: int = 0

    def next_id(self) -> str:
        self.last += 1
        return f"TC-{self.last:03d}"


@dataclass(frozen=True)
class PipelineConfig:
    adapter_timeout_s: Optional[float] = None
    generation_attempts: int = 1
    default_confidence: int = 85

    @classmethod
    def from_settings(cls) -> "PipelineConfig":
        return cls(
            adapter_timeout_s=settings.ADAPTER_TIMEOUT_S,
            generation_attempts=settings.GENERATION_MAX_ATTEMPTS,
        )


def normalize_confidence(value: Optional[float], default: int) -> int:
    """None 取默认值；四舍五入（half up）后截断到 [0, 100]"""
    if value is None:
        return default
    return max(0, min(100, int(math.floor(float(value) + 0.5))))


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class PipelineOrchestrator:
    """Processing pipeline with injected repositories and adapters.

    Dependency injection:
    - repos: Required (six entity collections)
    - extractor / generator: Required (generative model boundary)
    - config: Optional (default: from settings)
    """

    def __init__(
        self,
        repos: Repositories,
        extractor: ExtractionAdapter,
        generator: GenerationAdapter,
        *,
        config: Optional[PipelineConfig] = None,
    ):
        self._repos = repos
        self._extractor = extractor
        self._generator = generator
        self._config = config or PipelineConfig.from_settings()

    async def run(
        self,
        project_id: Any,
        *,
        is_disconnected: Optional[DisconnectCheck] = None,
    ) -> AsyncIterator[ProcessingStatus]:
        """Execute one generation run, yielding status events in stage order.

        Raises:
            ProjectNotFoundError: before any event is produced
        """
        project = self._repos.projects.get(project_id)
        if project is None:
            raise ProjectNotFoundError(f"Project {project_id} not found")

        framework = project.compliance_framework
        self._repos.projects.update(project.id, status=ProjectStatus.PROCESSING.value)
        logger.info(f"开始处理项目: project={project.id} framework={framework}")

        # 终止事件发出前置位；之后关闭事件流不再改写项目状态
        finished = False

        try:
            # Step 1: 合并文档
            started = time.monotonic()
            documents = self._repos.documents.list_by_project(project.id)
            if not documents:
                raise PipelineError("No documents found for processing")
            combined_content = "\n\n".join(doc.content or "" for doc in documents)
            yield self._status(
                PipelineStep.PARSING, StepStatus.COMPLETED,
                f"Parsed {len(documents)} document(s)", _elapsed_ms(started),
            )

            # Step 2: 需求抽取（失败即致命）
            started = time.monotonic()
            yield self._status(
                PipelineStep.EXTRACTION, StepStatus.PROCESSING,
                "Analyzing document content with AI...",
            )
            try:
                requirements = await self._extract_requirements(project, combined_content)
            except Exception as e:
                yield self._status(PipelineStep.EXTRACTION, StepStatus.FAILED, str(e))
                raise
            yield self._status(
                PipelineStep.EXTRACTION, StepStatus.COMPLETED,
                f"Extracted {len(requirements)} requirements", _elapsed_ms(started),
            )

            # Step 3: 合规映射（随每个需求的生成调用一并产出）
            started = time.monotonic()
            yield self._status(
                PipelineStep.MAPPING, StepStatus.PROCESSING,
                f"Mapping requirements to {framework} compliance standards...",
            )
            yield self._status(
                PipelineStep.MAPPING, StepStatus.COMPLETED,
                f"{len(requirements)} requirements queued for {framework} mapping",
                _elapsed_ms(started),
            )

            # Step 4: 逐个需求生成用例
            started = time.monotonic()
            yield self._status(
                PipelineStep.GENERATION, StepStatus.PROCESSING,
                "Creating comprehensive test cases...",
            )
            sequence = TestCaseIdSequence()
            failed = 0
            for requirement in requirements:
                if is_disconnected is not None and await is_disconnected():
                    raise PipelineAborted(
                        f"Client disconnected before {requirement.requirement_id}"
                    )
                if not await self._generate_for_requirement(project, requirement, sequence):
                    failed += 1

            message = f"Generated {sequence.last} test cases"
            if failed:
                message += f" ({failed} requirement(s) failed)"
            yield self._status(
                PipelineStep.GENERATION, StepStatus.COMPLETED, message, _elapsed_ms(started),
            )

            # Step 5: 汇总
            summary = compute_summary(
                self._repos.requirements.list_by_project(project.id),
                self._repos.test_cases.list_by_project(project.id),
                self._repos.compliance_mappings.list_by_project(project.id),
            )
            self._repos.projects.update(project.id, status=ProjectStatus.COMPLETED.value)
            finished = True
            logger.info(
                f"项目处理完成: project={project.id} requirements={summary.requirements_count} "
                f"test_cases={summary.test_cases_count} failed_requirements={failed}"
            )
            yield ProcessingStatus(
                step=PipelineStep.COMPLETED.value,
                status=StepStatus.COMPLETED,
                message="All processing steps completed successfully",
                summary=summary,
            )

        except PipelineAborted as e:
            logger.warning(f"项目处理中止: project={project.id}: {e}")
            self._mark_failed(project)

        except (GeneratorExit, asyncio.CancelledError):
            if not finished:
                logger.warning(f"事件流被关闭，项目处理中止: project={project.id}")
                self._mark_failed(project)
            raise

        except Exception as e:
            logger.exception(f"项目处理失败: project={project.id}")
            self._mark_failed(project)
            yield self._status(PipelineStep.FAILED, StepStatus.FAILED, str(e) or "Processing failed")

    # ============================================================
    # 节点
    # ============================================================

    async def _extract_requirements(self, project: Project, content: str) -> list[Requirement]:
        """调用抽取适配器并按原顺序批量写入需求"""
        extracted = await self._call_adapter(
            self._extractor.extract(content, project.compliance_framework),
            what="Requirement extraction",
        )
        default = self._config.default_confidence
        return self._repos.requirements.create_many([
            {
                "project_id": project.id,
                "requirement_id": item.requirement_id,
                "text": item.text,
                "type": item.type,
                "priority": item.priority,
                "compliance_section": item.compliance_section,
                "confidence": normalize_confidence(item.confidence, default),
            }
            for item in extracted
        ])

    async def _generate_for_requirement(
        self,
        project: Project,
        requirement: Requirement,
        sequence: TestCaseIdSequence,
    ) -> bool:
        """单个需求的生成；适配器失败被隔离，存储失败向上抛出"""
        framework = project.compliance_framework
        try:
            result = await self._generate_with_attempts(requirement, framework)
        except Exception as e:
            logger.error(
                f"用例生成失败: project={project.id} requirement={requirement.requirement_id} "
                f"({requirement.id}): {e}"
            )
            self._repos.explanations.create(
                project_id=project.id,
                type=ExplanationType.TEST_GENERATION.value,
                entity_id=str(requirement.id),
                reasoning=f"Failed to generate test cases: {e}",
                confidence=0,
                model_used=self._generator.model_name,
                processing_time=0,
            )
            return False

        self._persist_generation(project, requirement, result, sequence)
        return True

    async def _generate_with_attempts(self, requirement: Requirement, framework: str) -> GenerationResult:
        attempts = max(1, self._config.generation_attempts)
        last_error: Optional[Exception] = None
        for attempt in range(attempts):
            try:
                return await self._call_adapter(
                    self._generator.generate(requirement, framework),
                    what=f"Test case generation for {requirement.requirement_id}",
                )
            except Exception as e:
                last_error = e
                if attempt + 1 < attempts:
                    logger.warning(
                        f"用例生成重试 ({attempt + 1}/{attempts}): "
                        f"requirement={requirement.requirement_id}: {e}"
                    )
        raise last_error

    async def _call_adapter(self, call: Awaitable, *, what: str):
        timeout = self._config.adapter_timeout_s
        if timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise AdapterError(f"{what} timed out after {timeout}s") from e

    def _persist_generation(
        self,
        project: Project,
        requirement: Requirement,
        result: GenerationResult,
        sequence: TestCaseIdSequence,
    ) -> None:
        default = self._config.default_confidence
        model_used = self._generator.model_name

        test_case_rows = []
        explanation_rows = []
        for draft in result.test_cases:
            test_case_id = sequence.next_id()
            test_case_rows.append({
                "project_id": project.id,
                "requirement_id": requirement.id,
                "test_case_id": test_case_id,
                "title": draft.title,
                "type": draft.type,
                "priority": draft.priority,
                "preconditions": draft.preconditions,
                "test_steps": draft.test_steps,
                "expected_result": draft.expected_result,
                "compliance_section": draft.compliance_section,
                "is_edge_case": bool(draft.is_edge_case),
            })
            explanation_rows.append({
                "project_id": project.id,
                "type": ExplanationType.TEST_GENERATION.value,
                "entity_id": test_case_id,
                "reasoning": draft.reasoning or f"Generated test case for requirement: {requirement.text}",
                "confidence": normalize_confidence(draft.confidence, default),
                "model_used": model_used,
                "processing_time": result.processing_time,
            })

        mapping_rows = []
        for draft in result.compliance_mappings:
            confidence = normalize_confidence(draft.confidence, default)
            mapping_rows.append({
                "project_id": project.id,
                "requirement_id": requirement.id,
                "section": draft.section,
                "description": draft.description,
                "confidence": confidence,
                "reasoning": draft.reasoning,
                "framework": project.compliance_framework,
            })
            explanation_rows.append({
                "project_id": project.id,
                "type": ExplanationType.COMPLIANCE_MAPPING.value,
                "entity_id": str(requirement.id),
                "reasoning": draft.reasoning or f"Mapped requirement to {draft.section}",
                "confidence": confidence,
                "model_used": model_used,
                "processing_time": result.processing_time,
            })

        self._repos.test_cases.create_many(test_case_rows)
        self._repos.compliance_mappings.create_many(mapping_rows)
        self._repos.explanations.create_many(explanation_rows)
        logger.info(
            f"需求 {requirement.requirement_id} 生成 {len(test_case_rows)} 条用例, "
            f"{len(mapping_rows)} 条合规映射: project={project.id}"
        )

    def _mark_failed(self, project: Project) -> None:
        try:
            self._repos.projects.update(project.id, status=ProjectStatus.FAILED.value)
        except Exception:
            logger.exception(f"无法更新项目状态为 failed: project={project.id}")

    @staticmethod
    def _status(
        step: PipelineStep,
        status: StepStatus,
        message: str,
        duration: Optional[int] = None,
    ) -> ProcessingStatus:
        return ProcessingStatus(step=step.value, status=status, message=message, duration=duration)
