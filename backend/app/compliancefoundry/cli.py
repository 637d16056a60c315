from __future__ import annotations

import asyncio
from contextlib import aclosing
from pathlib import Path
from typing import List, NoReturn, Optional

import typer
from rich import print

from compliancefoundry.logging_config import setup_logging
from compliancefoundry.models.project_schemas import ProcessingStatus, StepStatus
from compliancefoundry.repositories import Repositories, in_memory_repositories, sqlalchemy_repositories
from compliancefoundry.services.document_parser import (
    MIME_DOC,
    MIME_DOCX,
    MIME_PDF,
    MIME_TEXT,
    DocumentParseError,
    DocumentParser,
    DocumentValidationError,
)
from compliancefoundry.services.export_service import ExportFormat, export_test_cases
from compliancefoundry.services.generation.adapters import (
    ExtractionAdapter,
    GenerationAdapter,
    LLMExtractionAdapter,
    LLMGenerationAdapter,
)
from compliancefoundry.services.pipeline.orchestrator import (
    TERMINAL_STEPS,
    PipelineOrchestrator,
    PipelineStep,
)

app = typer.Typer(add_completion=False, help="ComplianceFoundry CLI")

SUFFIX_MIME_TYPES = {
    ".txt": MIME_TEXT,
    ".pdf": MIME_PDF,
    ".docx": MIME_DOCX,
    ".doc": MIME_DOC,
}

STATUS_COLORS = {
    StepStatus.PENDING: "white",
    StepStatus.PROCESSING: "cyan",
    StepStatus.COMPLETED: "green",
    StepStatus.FAILED: "red",
}


# ============================================================
# 小工具：输出
# ============================================================
def _info(msg: str) -> None:
    print(f"[cyan][CF][/cyan] {msg}")


def _ok(msg: str) -> None:
    print(f"[green][CF][OK][/green] {msg}")


def _fail(msg: str, code: int = 1) -> NoReturn:
    print(f"[red][CF][FAIL][/red] {msg}")
    raise typer.Exit(code)


def _print_event(event: ProcessingStatus) -> None:
    color = STATUS_COLORS.get(event.status, "white")
    duration = f" ({event.duration}ms)" if event.duration is not None else ""
    print(f"[{color}]{event.step:<22}{event.status.value:<11}[/{color}] {event.message}{duration}")


def _load_documents(repos: Repositories, project_id, files: List[Path]) -> int:
    """本地文件直接解析入库（不经过上传目录）"""
    parser = DocumentParser()
    loaded = 0
    for path in files:
        mime_type = SUFFIX_MIME_TYPES.get(path.suffix.lower())
        try:
            parser.validate_file(path.stat().st_size, mime_type)
            parsed = parser.parse_document(path, mime_type)
        except (DocumentValidationError, DocumentParseError, OSError) as e:
            print(f"[yellow][CF][SKIP][/yellow] {path}: {e}")
            continue
        repos.documents.create(
            project_id=project_id,
            filename=path.name,
            original_name=path.name,
            file_size=path.stat().st_size,
            mime_type=mime_type,
            content=parsed.content,
        )
        loaded += 1
    return loaded


async def _run_pipeline(
    repos: Repositories,
    project_id,
    extractor: Optional[ExtractionAdapter] = None,
    generator: Optional[GenerationAdapter] = None,
) -> Optional[ProcessingStatus]:
    """打印事件直到终止事件，返回终止事件（事件流提前结束时为 None）"""
    orchestrator = PipelineOrchestrator(
        repos,
        extractor or LLMExtractionAdapter(),
        generator or LLMGenerationAdapter(),
    )
    async with aclosing(orchestrator.run(project_id)) as events:
        async for event in events:
            _print_event(event)
            if event.step in TERMINAL_STEPS:
                return event
    return None


# ============================================================
# 命令
# ============================================================
@app.command()
def serve(host: str = "127.0.0.1", port: int = 8000, reload: bool = False):
    """Run FastAPI server."""
    import uvicorn

    uvicorn.run("compliancefoundry.main:app", host=host, port=port, reload=reload)


@app.command("init-db")
def init_db_command():
    """Create database tables."""
    from compliancefoundry.database.config import DATABASE_URL, init_db

    init_db()
    _ok(f"Database initialized: {DATABASE_URL}")


@app.command()
def process(
    files: List[Path] = typer.Argument(..., exists=True, dir_okay=False, help="Documents to analyze"),
    framework: str = typer.Option("HIPAA", "--framework", "-f", help="Compliance framework"),
    name: str = typer.Option("cli-project", "--name", help="Project name"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Export file"),
    export_format: str = typer.Option("csv", "--format", help="csv | xml | word"),
    in_memory: bool = typer.Option(False, "--in-memory", help="Do not persist to the database"),
):
    """Extract requirements and generate test cases for local documents."""
    setup_logging()

    fmt = ExportFormat.parse(export_format)
    if fmt is None:
        _fail(f"Unsupported export format: {export_format}")

    db = None
    if in_memory:
        repos = in_memory_repositories()
    else:
        from compliancefoundry.database.config import SessionLocal, init_db

        init_db()
        db = SessionLocal()
        repos = sqlalchemy_repositories(db)

    try:
        project = repos.projects.create(
            name=name,
            compliance_framework=framework,
            export_format=fmt.value,
        )
        _info(f"Project {project.id} ({framework})")

        if not _load_documents(repos, project.id, files):
            _fail("No documents could be processed")

        last = asyncio.run(_run_pipeline(repos, project.id))
        if last is None or last.step != PipelineStep.COMPLETED.value:
            _fail("Processing failed")

        summary = last.summary
        _ok(
            f"{summary.requirements_count} requirements, {summary.test_cases_count} test cases, "
            f"coverage {summary.compliance_coverage}%, edge cases {summary.edge_cases_count}"
        )

        if out is not None:
            exported = export_test_cases(
                fmt,
                project,
                repos.requirements.list_by_project(project.id),
                repos.test_cases.list_by_project(project.id),
            )
            out.write_bytes(exported.content)
            _ok(f"Wrote {out}")
    finally:
        if db is not None:
            db.close()


if __name__ == "__main__":
    app()
