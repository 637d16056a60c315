"""ComplianceFoundry - Document Parser

文件上传校验与文本提取服务
"""
from __future__ import annotations

import logging
import zipfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from uuid import uuid4

from compliancefoundry.core.config import settings

logger = logging.getLogger(__name__)

MIME_TEXT = "text/plain"
MIME_PDF = "application/pdf"
MIME_DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
MIME_DOC = "application/msword"

ALLOWED_MIME_TYPES = (MIME_TEXT, MIME_PDF, MIME_DOCX, MIME_DOC)


class DocumentValidationError(ValueError):
    """文件大小或类型不合法"""
    pass


class DocumentParseError(Exception):
    """文本提取失败"""
    pass


@dataclass
class ParsedDocument:
    content: str
    word_count: int
    page_count: Optional[int] = None
    extracted_at: Optional[datetime] = None

    def __post_init__(self):
        if self.extracted_at is None:
            self.extracted_at = datetime.now(timezone.utc)


class DocumentParser:
    """文档解析服务"""

    def __init__(self, upload_dir: Optional[str] = None, max_file_size: Optional[int] = None):
        self.upload_dir = Path(upload_dir or settings.UPLOAD_DIR)
        self.max_file_size = max_file_size or settings.MAX_UPLOAD_SIZE

    def validate_file(self, size: int, mime_type: Optional[str]) -> None:
        """校验文件大小与 MIME 类型"""
        if size > self.max_file_size:
            raise DocumentValidationError(
                f"File size exceeds {self.max_file_size // (1024 * 1024)}MB limit"
            )
        if mime_type not in ALLOWED_MIME_TYPES:
            raise DocumentValidationError(
                "Unsupported file type. Please upload PDF, DOCX, or TXT files."
            )

    def save_file(self, content: bytes, original_name: str) -> Path:
        """
        保存上传的文件

        Returns:
            保存后的文件路径（唯一文件名）
        """
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        file_path = self.upload_dir / f"{uuid4().hex}{Path(original_name).suffix.lower()}"
        file_path.write_bytes(content)
        return file_path

    def parse_document(self, file_path: Path | str, mime_type: str) -> ParsedDocument:
        """
        从文件中提取文本内容

        Args:
            file_path: 文件路径
            mime_type: MIME 类型

        Returns:
            ParsedDocument

        Raises:
            DocumentParseError: 类型不支持或提取失败
        """
        path = Path(file_path)
        page_count = None
        try:
            if mime_type == MIME_TEXT:
                content = path.read_text(encoding="utf-8")
            elif mime_type == MIME_PDF:
                content, page_count = self._parse_pdf(path)
            elif mime_type in (MIME_DOCX, MIME_DOC):
                content = self._parse_docx(path)
            else:
                raise DocumentParseError(f"Unsupported file type: {mime_type}")
        except DocumentParseError:
            raise
        except (OSError, UnicodeDecodeError, ValueError, zipfile.BadZipFile) as e:
            raise DocumentParseError(f"Failed to parse document: {e}") from e

        word_count = len(content.split())
        return ParsedDocument(content=content, word_count=word_count, page_count=page_count)

    @staticmethod
    def _parse_pdf(path: Path) -> tuple[str, int]:
        from PyPDF2 import PdfReader
        from PyPDF2.errors import PdfReadError

        try:
            reader = PdfReader(str(path))
            text = "\n".join((page.extract_text() or "") for page in reader.pages)
        except PdfReadError as e:
            raise DocumentParseError(f"Failed to parse PDF: {e}") from e
        return text, len(reader.pages)

    @staticmethod
    def _parse_docx(path: Path) -> str:
        from docx import Document
        from docx.opc.exceptions import PackageNotFoundError

        try:
            doc = Document(str(path))
        except PackageNotFoundError as e:
            # 旧版 .doc 二进制格式 python-docx 无法读取
            raise DocumentParseError(
                "Unable to read Word document; legacy .doc files must be saved as .docx"
            ) from e
        return "\n".join(para.text for para in doc.paragraphs)

    def delete_file(self, file_path: Path | str) -> bool:
        """删除临时文件"""
        try:
            Path(file_path).unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"删除临时文件失败 {file_path}: {e}")
            return False


# 全局实例
document_parser = DocumentParser()
