"""Text extraction from uploaded file bytes.

Converts raw bytes plus a declared MIME type into plain text.  Two formats
are supported:

* ``text/plain`` -- decoded as UTF-8; undecodable bytes become U+FFFD.
* DOCX -- structural text via python-docx: body paragraphs in document
  order followed by table cell paragraphs.  Runs, styles and other
  formatting are discarded.

Extraction is pure: it reads only its arguments and touches no external
state, so it can be unit-tested with fixture byte strings.
"""

from __future__ import annotations

import io
import zipfile

import structlog
from docx import Document as DocxDocument
from docx.opc.exceptions import PackageNotFoundError

from kbrag.utils.errors import EmptyContentError, ExtractionError, UnsupportedFormatError

logger = structlog.get_logger(logger_name=__name__)

PLAIN_TEXT = "text/plain"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

SUPPORTED_MIME_TYPES: frozenset[str] = frozenset({PLAIN_TEXT, DOCX})


class TextExtractor:
    """Dispatches on MIME type to a format-specific extractor."""

    def extract(self, data: bytes, mime_type: str) -> str:
        """Return the plain text contained in *data*.

        Parameters
        ----------
        data:
            Raw file bytes.
        mime_type:
            Declared MIME type; parameters such as ``; charset=utf-8`` are
            ignored.

        Raises
        ------
        UnsupportedFormatError
            If *mime_type* has no extractor.
        ExtractionError
            If the bytes are not a readable file of that type.
        EmptyContentError
            If the extracted text is empty or whitespace only.
        """
        base_type = mime_type.split(";", 1)[0].strip().lower()
        if base_type == PLAIN_TEXT:
            text = self._extract_plain_text(data)
        elif base_type == DOCX:
            text = self._extract_docx(data)
        else:
            raise UnsupportedFormatError(f"Unsupported MIME type: {mime_type}")

        if not text.strip():
            raise EmptyContentError(f"Document of type {base_type} contains no extractable text")

        logger.debug("text_extracted", mime_type=base_type, bytes=len(data), chars=len(text))
        return text

    @staticmethod
    def _extract_plain_text(data: bytes) -> str:
        # utf-8-sig drops a leading byte-order mark if present.
        return data.decode("utf-8-sig", errors="replace")

    @staticmethod
    def _extract_docx(data: bytes) -> str:
        try:
            doc = DocxDocument(io.BytesIO(data))
        except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as exc:
            raise ExtractionError(f"DOCX parsing failed: {exc}") from exc

        lines = [p.text for p in doc.paragraphs]
        for table in doc.tables:
            for row in table.rows:
                for cell in row.cells:
                    lines.extend(p.text for p in cell.paragraphs)

        return "\n".join(lines)
