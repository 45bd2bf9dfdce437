"""Unit tests for TextExtractor - plain text and DOCX extraction."""

from __future__ import annotations

import pytest

from kbrag.services.ingestion.text_extractor import DOCX, PLAIN_TEXT, TextExtractor
from kbrag.utils.errors import EmptyContentError, ExtractionError, UnsupportedFormatError
from tests.conftest import make_docx


@pytest.fixture
def extractor() -> TextExtractor:
    return TextExtractor()


class TestPlainText:
    def test_decodes_utf8(self, extractor: TextExtractor) -> None:
        text = extractor.extract("Café policy\nline two".encode("utf-8"), PLAIN_TEXT)
        assert text == "Café policy\nline two"

    def test_strips_byte_order_mark(self, extractor: TextExtractor) -> None:
        text = extractor.extract(b"\xef\xbb\xbfHello", PLAIN_TEXT)
        assert text == "Hello"

    def test_invalid_bytes_replaced(self, extractor: TextExtractor) -> None:
        text = extractor.extract(b"ok \xff\xfe done", PLAIN_TEXT)
        assert text.startswith("ok ")
        assert "�" in text

    def test_mime_parameters_ignored(self, extractor: TextExtractor) -> None:
        assert extractor.extract(b"hi", "Text/Plain; charset=utf-8") == "hi"

    def test_whitespace_only_raises(self, extractor: TextExtractor) -> None:
        with pytest.raises(EmptyContentError):
            extractor.extract(b"  \n\t ", PLAIN_TEXT)


class TestDocx:
    def test_paragraphs_in_order(self, extractor: TextExtractor) -> None:
        data = make_docx(["Vacation policy", "Employees accrue days monthly."])
        text = extractor.extract(data, DOCX)
        assert text.index("Vacation policy") < text.index("Employees accrue days monthly.")

    def test_table_cells_included(self, extractor: TextExtractor) -> None:
        data = make_docx(["Rates"], table=[["Region", "Rate"], ["North", "12"]])
        text = extractor.extract(data, DOCX)
        for value in ("Rates", "Region", "Rate", "North", "12"):
            assert value in text

    def test_corrupt_docx_raises_extraction_error(self, extractor: TextExtractor) -> None:
        with pytest.raises(ExtractionError):
            extractor.extract(b"definitely not a zip archive", DOCX)

    def test_empty_docx_raises_empty_content(self, extractor: TextExtractor) -> None:
        with pytest.raises(EmptyContentError):
            extractor.extract(make_docx([]), DOCX)


class TestUnsupported:
    @pytest.mark.parametrize("mime_type", ["application/pdf", "image/png", ""])
    def test_unknown_mime_type(self, extractor: TextExtractor, mime_type: str) -> None:
        with pytest.raises(UnsupportedFormatError):
            extractor.extract(b"data", mime_type)
