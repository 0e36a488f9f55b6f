"""Source document loading: the text-extraction boundary.

Converting uploaded files to plain text is a collaborator concern. The
pipeline only sees SourceDocument; this module defines the TextExtractor
boundary and the plain-text and PDF adapters the CLI uses.
"""

from pathlib import Path
from typing import Iterable, Protocol

import pdfplumber
import structlog

from coursegen.models import SourceDocument

logger = structlog.get_logger(__name__)

# Documents with less text than this are skipped as unreadable
MIN_DOCUMENT_CHARS = 50

TEXT_SUFFIXES = {".txt", ".md", ".markdown", ".text"}


class DocumentExtractionError(Exception):
    """Error during document text extraction."""

    pass


class TextExtractor(Protocol):
    """Converts one file into plain text."""

    def supports(self, path: Path) -> bool:
        ...

    def extract(self, path: Path) -> str:
        ...


class PlainTextExtractor:
    """Reads text and markdown files as UTF-8."""

    def supports(self, path: Path) -> bool:
        return path.suffix.lower() in TEXT_SUFFIXES

    def extract(self, path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise DocumentExtractionError(f"Failed to read {path}: {e}") from e


class PdfTextExtractor:
    """Extracts PDF text page by page with pdfplumber."""

    def supports(self, path: Path) -> bool:
        return path.suffix.lower() == ".pdf"

    def extract(self, path: Path) -> str:
        logger.info("extracting_pdf", path=str(path))

        pages: list[str] = []
        try:
            with pdfplumber.open(path) as pdf:
                for page_num, page in enumerate(pdf.pages, start=1):
                    text = _clean_page_text(page.extract_text() or "")
                    pages.append(text)
                    logger.debug("page_extracted", page=page_num, chars=len(text))
        except Exception as e:
            logger.error("pdf_extraction_failed", path=str(path), error=str(e))
            raise DocumentExtractionError(f"Failed to extract PDF {path}: {e}") from e

        return "\n\n".join(p for p in pages if p)


def _clean_page_text(text: str) -> str:
    """Normalize whitespace while keeping paragraph breaks."""
    if not text:
        return ""

    cleaned_lines = []
    for line in text.split("\n"):
        line = line.rstrip()
        while "  " in line:
            line = line.replace("  ", " ")
        cleaned_lines.append(line)

    result = "\n".join(cleaned_lines)
    while "\n\n\n" in result:
        result = result.replace("\n\n\n", "\n\n")

    return result.strip()


DEFAULT_EXTRACTORS: tuple[TextExtractor, ...] = (PdfTextExtractor(), PlainTextExtractor())


def load_documents(
    paths: Iterable[str | Path],
    extractors: Iterable[TextExtractor] = DEFAULT_EXTRACTORS,
) -> list[SourceDocument]:
    """Load files as source documents, in the given order.

    Files with fewer than MIN_DOCUMENT_CHARS characters of text are skipped.

    Args:
        paths: Files to load.
        extractors: Extractors tried in order; the first that supports a file wins.

    Returns:
        SourceDocument list (may be empty).

    Raises:
        DocumentExtractionError: If a file is missing, unsupported or unreadable.
    """
    extractors = list(extractors)
    documents: list[SourceDocument] = []

    for raw_path in paths:
        path = Path(raw_path)
        if not path.exists():
            raise DocumentExtractionError(f"File not found: {path}")

        extractor = next((e for e in extractors if e.supports(path)), None)
        if extractor is None:
            raise DocumentExtractionError(f"Unsupported file type: {path.suffix or path.name}")

        content = extractor.extract(path).strip()
        if len(content) <= MIN_DOCUMENT_CHARS:
            logger.warning("document_skipped_too_short", path=str(path), chars=len(content))
            continue

        documents.append(SourceDocument(name=path.name, content=content, type=path.suffix.lower().lstrip(".")))
        logger.info("document_loaded", path=str(path), chars=len(content))

    return documents
