"""ComplianceFoundry - Export Service

测试用例导出：CSV / XML / Word。
每条记录对应一个测试用例，并带上所属需求的原文。
"""
from __future__ import annotations

import csv
import io
import re
import unicodedata
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence
from urllib.parse import quote

from compliancefoundry.database.models import Project, Requirement, TestCase

CSV_HEADERS = [
    "ID",
    "Type",
    "Title",
    "Priority",
    "Requirement",
    "Compliance Section",
    "Preconditions",
    "Test Steps",
    "Expected Result",
]


class ExportFormat(str, Enum):
    CSV = "csv"
    XML = "xml"
    WORD = "word"

    @classmethod
    def parse(cls, value: str) -> Optional["ExportFormat"]:
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


@dataclass
class ExportFile:
    content: bytes
    media_type: str
    filename: str

    @property
    def content_disposition(self) -> str:
        """attachment 头：ASCII 回退文件名 + RFC 5987 UTF-8 文件名"""
        return (
            f'attachment; filename="{ascii_filename(self.filename)}"; '
            f"filename*=UTF-8''{quote(self.filename, safe='')}"
        )


def ascii_filename(filename: str) -> str:
    """去掉非 ASCII 字符，引号、反斜杠与控制字符替换为下划线"""
    normalized = unicodedata.normalize("NFKD", filename).encode("ascii", "ignore").decode("ascii")
    return re.sub(r'["\\\x00-\x1f\x7f]', "_", normalized)


def _requirement_text(requirements: Sequence[Requirement]) -> dict:
    return {req.id: req.text for req in requirements}


def escape_xml(s: str) -> str:
    return (
        s.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def generate_csv(requirements: Sequence[Requirement], test_cases: Sequence[TestCase]) -> str:
    """RFC 4180 引号规则，字段内的逗号 / 引号 / 换行都能原样读回"""
    texts = _requirement_text(requirements)
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for tc in test_cases:
        writer.writerow([
            tc.test_case_id,
            tc.type,
            tc.title,
            tc.priority,
            texts.get(tc.requirement_id, ""),
            tc.compliance_section or "",
            tc.preconditions or "",
            tc.test_steps or "",
            tc.expected_result or "",
        ])
    return buffer.getvalue()


def generate_xml(requirements: Sequence[Requirement], test_cases: Sequence[TestCase]) -> str:
    texts = _requirement_text(requirements)
    parts: list[str] = ['<?xml version="1.0" encoding="UTF-8"?>', "<testSuite>"]
    for tc in test_cases:
        fields = [
            ("title", tc.title),
            ("type", tc.type),
            ("priority", tc.priority),
            ("requirement", texts.get(tc.requirement_id, "")),
            ("complianceSection", tc.compliance_section),
            ("preconditions", tc.preconditions),
            ("testSteps", tc.test_steps),
            ("expectedResult", tc.expected_result),
        ]
        parts.append(f'  <testCase id="{escape_xml(tc.test_case_id)}">')
        for tag, value in fields:
            parts.append(f"    <{tag}>{escape_xml(value or '')}</{tag}>")
        parts.append("  </testCase>")
    parts.append("</testSuite>")
    return "\n".join(parts)


def generate_docx(
    project: Project,
    requirements: Sequence[Requirement],
    test_cases: Sequence[TestCase],
) -> bytes:
    from docx import Document

    texts = _requirement_text(requirements)
    doc = Document()
    doc.add_heading(f"{project.name} - Test Cases", level=0)
    doc.add_paragraph(f"Compliance framework: {project.compliance_framework}")

    for tc in test_cases:
        doc.add_heading(f"{tc.test_case_id}: {tc.title}", level=2)
        table = doc.add_table(rows=0, cols=2)
        table.style = "Table Grid"
        for label, value in (
            ("Type", tc.type),
            ("Priority", tc.priority),
            ("Requirement", texts.get(tc.requirement_id, "")),
            ("Compliance Section", tc.compliance_section),
            ("Preconditions", tc.preconditions),
            ("Test Steps", tc.test_steps),
            ("Expected Result", tc.expected_result),
            ("Edge Case", "Yes" if tc.is_edge_case else "No"),
        ):
            cells = table.add_row().cells
            cells[0].text = label
            cells[1].text = value or ""

    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


def export_test_cases(
    fmt: ExportFormat,
    project: Project,
    requirements: Sequence[Requirement],
    test_cases: Sequence[TestCase],
) -> ExportFile:
    if fmt is ExportFormat.CSV:
        return ExportFile(
            content=generate_csv(requirements, test_cases).encode("utf-8"),
            media_type="text/csv",
            filename=f"{project.name}-testcases.csv",
        )
    if fmt is ExportFormat.XML:
        return ExportFile(
            content=generate_xml(requirements, test_cases).encode("utf-8"),
            media_type="application/xml",
            filename=f"{project.name}-testcases.xml",
        )
    return ExportFile(
        content=generate_docx(project, requirements, test_cases),
        media_type="application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        filename=f"{project.name}-testcases.docx",
    )
