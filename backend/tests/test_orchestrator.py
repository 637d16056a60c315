"""Pipeline Orchestrator 测试

使用内存仓储 + 假适配器，验证事件顺序、用例编号、失败隔离与中止行为。
"""
import asyncio

import pytest

from compliancefoundry.database.models import ExplanationType, ProjectStatus
from compliancefoundry.models.project_schemas import StepStatus
from compliancefoundry.repositories import in_memory_repositories
from compliancefoundry.services.generation.adapters import (
    AdapterError,
    DraftTestCase,
    ExtractedRequirement,
    GenerationResult,
)
from compliancefoundry.services.pipeline.orchestrator import (
    TERMINAL_STEPS,
    PipelineConfig,
    PipelineOrchestrator,
    ProjectNotFoundError,
    TestCaseIdSequence,
    normalize_confidence,
)
from conftest import FakeExtractionAdapter, FakeGenerationAdapter, default_requirements


def _seed_project(repos, with_document=True):
    project = repos.projects.create(
        name="EHR Portal",
        compliance_framework="HIPAA",
        export_format="CSV",
    )
    if with_document:
        repos.documents.create(
            project_id=project.id,
            filename="a.txt",
            original_name="policy.txt",
            file_size=42,
            mime_type="text/plain",
            content="The system must encrypt PHI at rest.",
        )
    return project


async def _collect(orchestrator, project_id, **kwargs):
    return [event async for event in orchestrator.run(project_id, **kwargs)]


def _steps(events):
    return [(e.step, e.status.value) for e in events]


@pytest.fixture
def repos():
    return in_memory_repositories()


class TestTestCaseIdSequence:
    """用例编号计数器"""

    def test_ids_are_zero_padded_and_monotonic(self):
        sequence = TestCaseIdSequence()
        assert [sequence.next_id() for _ in range(3)] == ["TC-001", "TC-002", "TC-003"]
        assert sequence.last == 3

    def test_ids_beyond_999_keep_growing(self):
        sequence = TestCaseIdSequence(last=999)
        assert sequence.next_id() == "TC-1000"


class TestNormalizeConfidence:

    def test_missing_uses_default(self):
        assert normalize_confidence(None, 85) == 85

    def test_rounds_half_up(self):
        assert normalize_confidence(92.5, 85) == 93
        assert normalize_confidence(92.4, 85) == 92

    def test_clamped_to_range(self):
        assert normalize_confidence(150, 85) == 100
        assert normalize_confidence(-3, 85) == 0


class TestPipelineRun:
    """完整运行"""

    @pytest.mark.asyncio
    async def test_successful_run_event_sequence(self, repos):
        project = _seed_project(repos)
        orchestrator = PipelineOrchestrator(
            repos, FakeExtractionAdapter(), FakeGenerationAdapter(), config=PipelineConfig(),
        )

        events = await _collect(orchestrator, project.id)

        assert _steps(events) == [
            ("parsing", "completed"),
            ("extraction", "processing"),
            ("extraction", "completed"),
            ("mapping", "processing"),
            ("mapping", "completed"),
            ("generation", "processing"),
            ("generation", "completed"),
            ("processing_completed", "completed"),
        ]
        assert events[2].message == "Extracted 3 requirements"
        assert events[-1].summary is not None
        assert events[-1].summary.requirements_count == 3
        assert events[-1].summary.test_cases_count == 6
        assert events[-1].summary.compliance_coverage == 100
        assert repos.projects.get(project.id).status == ProjectStatus.COMPLETED.value

    @pytest.mark.asyncio
    async def test_test_case_ids_continue_across_requirements(self, repos):
        project = _seed_project(repos)
        extractor = FakeExtractionAdapter(requirements=default_requirements()[:2])
        orchestrator = PipelineOrchestrator(
            repos, extractor, FakeGenerationAdapter(cases_per_requirement=2), config=PipelineConfig(),
        )

        await _collect(orchestrator, project.id)

        requirements = repos.requirements.list_by_project(project.id)
        test_cases = repos.test_cases.list_by_project(project.id)
        assert [tc.test_case_id for tc in test_cases] == ["TC-001", "TC-002", "TC-003", "TC-004"]
        assert [tc.requirement_id for tc in test_cases] == [
            requirements[0].id, requirements[0].id, requirements[1].id, requirements[1].id,
        ]

    @pytest.mark.asyncio
    async def test_requirements_persisted_in_extraction_order(self, repos):
        project = _seed_project(repos)
        orchestrator = PipelineOrchestrator(
            repos, FakeExtractionAdapter(), FakeGenerationAdapter(), config=PipelineConfig(),
        )

        await _collect(orchestrator, project.id)

        requirements = repos.requirements.list_by_project(project.id)
        assert [r.requirement_id for r in requirements] == ["REQ-001", "REQ-002", "REQ-003"]
        assert requirements[0].confidence == 92
        # 缺失的置信度取默认值
        assert requirements[1].confidence == 85

    @pytest.mark.asyncio
    async def test_documents_are_combined_for_extraction(self, repos):
        project = _seed_project(repos)
        repos.documents.create(
            project_id=project.id,
            filename="b.txt",
            original_name="second.txt",
            file_size=10,
            mime_type="text/plain",
            content="Second document.",
        )
        extractor = FakeExtractionAdapter()
        orchestrator = PipelineOrchestrator(
            repos, extractor, FakeGenerationAdapter(), config=PipelineConfig(),
        )

        await _collect(orchestrator, project.id)

        assert extractor.calls == [
            ("The system must encrypt PHI at rest.\n\nSecond document.", "HIPAA"),
        ]


class TestFailureIsolation:
    """单个需求失败不影响其他需求"""

    @pytest.mark.asyncio
    async def test_failed_requirement_records_zero_confidence_explanation(self, repos):
        project = _seed_project(repos)
        generator = FakeGenerationAdapter(cases_per_requirement=2, fail_on=("REQ-002",))
        orchestrator = PipelineOrchestrator(
            repos, FakeExtractionAdapter(), generator, config=PipelineConfig(),
        )

        events = await _collect(orchestrator, project.id)

        assert generator.calls == ["REQ-001", "REQ-002", "REQ-003"]
        assert events[-1].step == "processing_completed"
        assert "(1 requirement(s) failed)" in events[-2].message

        requirements = repos.requirements.list_by_project(project.id)
        test_cases = repos.test_cases.list_by_project(project.id)
        assert [tc.test_case_id for tc in test_cases] == ["TC-001", "TC-002", "TC-003", "TC-004"]
        assert {tc.requirement_id for tc in test_cases} == {requirements[0].id, requirements[2].id}

        failed = [
            e for e in repos.explanations.list_by_project(project.id)
            if e.entity_id == str(requirements[1].id)
        ]
        assert len(failed) == 1
        assert failed[0].type == ExplanationType.TEST_GENERATION.value
        assert failed[0].confidence == 0
        assert failed[0].reasoning.startswith("Failed to generate test cases:")
        assert "provider exploded on REQ-002" in failed[0].reasoning
        assert repos.projects.get(project.id).status == ProjectStatus.COMPLETED.value

    @pytest.mark.asyncio
    async def test_all_requirements_failing_still_completes(self, repos):
        project = _seed_project(repos)
        generator = FakeGenerationAdapter(fail_on=("REQ-001", "REQ-002", "REQ-003"))
        orchestrator = PipelineOrchestrator(
            repos, FakeExtractionAdapter(), generator, config=PipelineConfig(),
        )

        events = await _collect(orchestrator, project.id)

        assert events[-1].step == "processing_completed"
        assert events[-1].summary.test_cases_count == 0
        assert events[-1].summary.compliance_coverage == 0
        assert len(repos.explanations.list_by_project(project.id)) == 3

    @pytest.mark.asyncio
    async def test_timeout_counts_as_requirement_failure(self, repos):
        project = _seed_project(repos)

        class SlowGenerator(FakeGenerationAdapter):
            async def generate(self, requirement, framework):
                if requirement.requirement_id == "REQ-002":
                    await asyncio.sleep(1)
                return await super().generate(requirement, framework)

        orchestrator = PipelineOrchestrator(
            repos, FakeExtractionAdapter(), SlowGenerator(),
            config=PipelineConfig(adapter_timeout_s=0.05),
        )

        events = await _collect(orchestrator, project.id)

        assert events[-1].step == "processing_completed"
        zero = [e for e in repos.explanations.list_by_project(project.id) if e.confidence == 0]
        assert len(zero) == 1
        assert "timed out" in zero[0].reasoning
        assert len(repos.test_cases.list_by_project(project.id)) == 4

    @pytest.mark.asyncio
    async def test_retry_attempts_recover_transient_failure(self, repos):
        project = _seed_project(repos)

        class FlakyGenerator(FakeGenerationAdapter):
            async def generate(self, requirement, framework):
                if requirement.requirement_id == "REQ-001" and self.calls.count("REQ-001") == 0:
                    self.calls.append("REQ-001")
                    raise AdapterError("transient")
                return await super().generate(requirement, framework)

        generator = FlakyGenerator()
        orchestrator = PipelineOrchestrator(
            repos, FakeExtractionAdapter(), generator,
            config=PipelineConfig(generation_attempts=2),
        )

        await _collect(orchestrator, project.id)

        assert generator.calls.count("REQ-001") == 2
        assert all(e.confidence > 0 for e in repos.explanations.list_by_project(project.id))
        assert len(repos.test_cases.list_by_project(project.id)) == 6


class TestFatalErrors:
    """致命错误：抽取失败、无文档、项目不存在"""

    @pytest.mark.asyncio
    async def test_extraction_failure_stops_run(self, repos):
        project = _seed_project(repos)
        generator = FakeGenerationAdapter()
        orchestrator = PipelineOrchestrator(
            repos,
            FakeExtractionAdapter(error=AdapterError("Failed to extract requirements: bad JSON")),
            generator,
            config=PipelineConfig(),
        )

        events = await _collect(orchestrator, project.id)

        assert _steps(events) == [
            ("parsing", "completed"),
            ("extraction", "processing"),
            ("extraction", "failed"),
            ("processing_failed", "failed"),
        ]
        assert events[-1].message == "Failed to extract requirements: bad JSON"
        assert generator.calls == []
        assert repos.requirements.list_by_project(project.id) == []
        assert repos.projects.get(project.id).status == ProjectStatus.FAILED.value

    @pytest.mark.asyncio
    async def test_no_documents_fails(self, repos):
        project = _seed_project(repos, with_document=False)
        orchestrator = PipelineOrchestrator(
            repos, FakeExtractionAdapter(), FakeGenerationAdapter(), config=PipelineConfig(),
        )

        events = await _collect(orchestrator, project.id)

        assert len(events) == 1
        assert events[0].step == "processing_failed"
        assert events[0].status == StepStatus.FAILED
        assert events[0].message == "No documents found for processing"
        assert repos.projects.get(project.id).status == ProjectStatus.FAILED.value

    @pytest.mark.asyncio
    async def test_unknown_project_raises_before_events(self, repos):
        orchestrator = PipelineOrchestrator(
            repos, FakeExtractionAdapter(), FakeGenerationAdapter(), config=PipelineConfig(),
        )

        with pytest.raises(ProjectNotFoundError):
            await _collect(orchestrator, "00000000-0000-0000-0000-000000000000")


class TestDisconnect:

    @pytest.mark.asyncio
    async def test_disconnect_stops_further_generation(self, repos):
        project = _seed_project(repos)
        generator = FakeGenerationAdapter()
        checks = []

        async def is_disconnected():
            checks.append(True)
            return len(checks) > 1

        orchestrator = PipelineOrchestrator(
            repos, FakeExtractionAdapter(), generator, config=PipelineConfig(),
        )

        events = await _collect(orchestrator, project.id, is_disconnected=is_disconnected)

        assert generator.calls == ["REQ-001"]
        assert events[-1].step == "generation"
        assert events[-1].status == StepStatus.PROCESSING
        assert repos.projects.get(project.id).status == ProjectStatus.FAILED.value


class TestStreamClose:
    """消费方主动关闭事件流"""

    @pytest.mark.asyncio
    async def test_close_after_terminal_event_keeps_completed(self, repos):
        project = _seed_project(repos)
        orchestrator = PipelineOrchestrator(repos, FakeExtractionAdapter(), FakeGenerationAdapter())

        events = orchestrator.run(project.id)
        last = None
        async for event in events:
            last = event
            if event.step in TERMINAL_STEPS:
                break
        await events.aclose()

        assert last.step == "processing_completed"
        assert repos.projects.get(project.id).status == ProjectStatus.COMPLETED.value

    @pytest.mark.asyncio
    async def test_close_mid_generation_marks_failed(self, repos):
        project = _seed_project(repos)
        generator = FakeGenerationAdapter()
        orchestrator = PipelineOrchestrator(repos, FakeExtractionAdapter(), generator)

        events = orchestrator.run(project.id)
        async for event in events:
            if (event.step, event.status) == ("generation", StepStatus.PROCESSING):
                break
        await events.aclose()

        assert generator.calls == []
        assert repos.test_cases.list_by_project(project.id) == []
        assert repos.projects.get(project.id).status == ProjectStatus.FAILED.value


class TestPersistedDefaults:
    """草稿缺省字段由流水线补齐"""

    @pytest.mark.asyncio
    async def test_missing_draft_fields_get_defaults(self, repos):
        project = _seed_project(repos)

        class BareGenerator(FakeGenerationAdapter):
            async def generate(self, requirement, framework):
                return GenerationResult(test_cases=[
                    DraftTestCase(title="Bare case", type="Functional", priority="Low"),
                ])

        extractor = FakeExtractionAdapter(requirements=[
            ExtractedRequirement(
                requirement_id="REQ-001", text="Audit logs must be kept.", type="Audit", priority="Low",
            ),
        ])
        orchestrator = PipelineOrchestrator(repos, extractor, BareGenerator(), config=PipelineConfig())

        await _collect(orchestrator, project.id)

        test_case = repos.test_cases.list_by_project(project.id)[0]
        assert test_case.is_edge_case is False
        explanation = repos.explanations.list_by_project(project.id)[0]
        assert explanation.entity_id == "TC-001"
        assert explanation.confidence == 85
        assert explanation.reasoning == "Generated test case for requirement: Audit logs must be kept."
        assert explanation.model_used == "fake-generator"

    @pytest.mark.asyncio
    async def test_explanations_follow_test_cases_then_mappings(self, repos):
        project = _seed_project(repos)
        extractor = FakeExtractionAdapter(requirements=default_requirements()[:1])
        orchestrator = PipelineOrchestrator(
            repos, extractor, FakeGenerationAdapter(cases_per_requirement=2), config=PipelineConfig(),
        )

        await _collect(orchestrator, project.id)

        requirement = repos.requirements.list_by_project(project.id)[0]
        explanations = repos.explanations.list_by_project(project.id)
        assert [(e.type, e.entity_id) for e in explanations] == [
            (ExplanationType.TEST_GENERATION.value, "TC-001"),
            (ExplanationType.TEST_GENERATION.value, "TC-002"),
            (ExplanationType.COMPLIANCE_MAPPING.value, str(requirement.id)),
        ]
        mapping = repos.compliance_mappings.list_by_project(project.id)[0]
        assert mapping.framework == "HIPAA"
        assert mapping.confidence == 88
