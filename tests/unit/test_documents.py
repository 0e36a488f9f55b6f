"""Unit tests for source document loading."""

import pytest

from coursegen.documents import (
    DocumentExtractionError,
    PdfTextExtractor,
    PlainTextExtractor,
    _clean_page_text,
    load_documents,
)


class TestLoadDocuments:
    """Tests for turning files into SourceDocuments."""

    def test_loads_text_files_in_order(self, tmp_path):
        first = tmp_path / "b_policy.txt"
        second = tmp_path / "a_policy.md"
        first.write_text("Policy B. " * 20, encoding="utf-8")
        second.write_text("# Policy A\n\n" + "Rule. " * 20, encoding="utf-8")

        documents = load_documents([first, second])

        assert [d.name for d in documents] == ["b_policy.txt", "a_policy.md"]
        assert documents[1].type == "md"
        assert documents[1].content.startswith("# Policy A")

    def test_skips_near_empty_documents(self, tmp_path):
        short = tmp_path / "short.txt"
        short.write_text("Too short.", encoding="utf-8")
        assert load_documents([short]) == []

    def test_missing_file(self, tmp_path):
        with pytest.raises(DocumentExtractionError):
            load_documents([tmp_path / "missing.txt"])

    def test_unsupported_type(self, tmp_path):
        image = tmp_path / "scan.png"
        image.write_bytes(b"\x89PNG")
        with pytest.raises(DocumentExtractionError):
            load_documents([image])


class TestExtractors:
    """Tests for extractor selection and text cleanup."""

    def test_supports(self, tmp_path):
        assert PdfTextExtractor().supports(tmp_path / "x.PDF")
        assert not PdfTextExtractor().supports(tmp_path / "x.txt")
        assert PlainTextExtractor().supports(tmp_path / "x.markdown")

    def test_clean_page_text(self):
        text = "Line  one   here   \n\n\n\nLine two  "
        assert _clean_page_text(text) == "Line one here\n\nLine two"

    def test_invalid_pdf_raises(self, tmp_path):
        broken = tmp_path / "broken.pdf"
        broken.write_bytes(b"not a pdf")
        with pytest.raises(DocumentExtractionError):
            PdfTextExtractor().extract(broken)
