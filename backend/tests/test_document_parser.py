"""Document Parser 测试"""
import pytest

from compliancefoundry.services.document_parser import (
    MIME_DOC,
    MIME_DOCX,
    MIME_PDF,
    MIME_TEXT,
    DocumentParseError,
    DocumentParser,
    DocumentValidationError,
)


@pytest.fixture
def parser(tmp_path):
    return DocumentParser(upload_dir=str(tmp_path / "uploads"), max_file_size=1024)


class TestValidation:

    @pytest.mark.parametrize("mime_type", [MIME_TEXT, MIME_PDF, MIME_DOCX, MIME_DOC])
    def test_allowed_types(self, parser, mime_type):
        parser.validate_file(100, mime_type)

    def test_rejects_unknown_type(self, parser):
        with pytest.raises(DocumentValidationError, match="Unsupported file type"):
            parser.validate_file(100, "image/png")

    def test_rejects_missing_type(self, parser):
        with pytest.raises(DocumentValidationError):
            parser.validate_file(100, None)

    def test_rejects_oversized_file(self, parser):
        with pytest.raises(DocumentValidationError):
            parser.validate_file(2048, MIME_TEXT)


class TestParsing:

    def test_plain_text(self, parser):
        path = parser.save_file(b"The system must log access.\nAll of it.", "policy.TXT")

        parsed = parser.parse_document(path, MIME_TEXT)

        assert path.suffix == ".txt"
        assert parsed.content == "The system must log access.\nAll of it."
        assert parsed.word_count == 8
        assert parsed.extracted_at is not None

    def test_docx(self, parser, tmp_path):
        from docx import Document

        source = tmp_path / "policy.docx"
        doc = Document()
        doc.add_paragraph("Access must be logged.")
        doc.add_paragraph("Data shall be encrypted.")
        doc.save(str(source))

        parsed = parser.parse_document(source, MIME_DOCX)

        assert parsed.content == "Access must be logged.\nData shall be encrypted."

    def test_legacy_doc_is_a_parse_error(self, parser):
        path = parser.save_file(b"\xd0\xcf\x11\xe0 not a zip", "old.doc")

        with pytest.raises(DocumentParseError):
            parser.parse_document(path, MIME_DOC)

    def test_broken_pdf_is_a_parse_error(self, parser):
        path = parser.save_file(b"%PDF-garbage", "broken.pdf")

        with pytest.raises(DocumentParseError):
            parser.parse_document(path, MIME_PDF)

    def test_invalid_utf8_text_is_a_parse_error(self, parser):
        path = parser.save_file(b"\xff\xfe\xfa", "bad.txt")

        with pytest.raises(DocumentParseError):
            parser.parse_document(path, MIME_TEXT)


def test_delete_file(parser):
    path = parser.save_file(b"x", "a.txt")

    assert parser.delete_file(path) is True
    assert not path.exists()
    assert parser.delete_file(path) is False
