"""Plain-text extraction from uploaded résumé files (PDF, DOCX, TXT)."""

from __future__ import annotations

import logging
from pathlib import Path

from jobmatch.errors import ExtractionError

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".pdf", ".docx", ".txt")


class ResumeTextExtractor:
    """Turns a résumé file into plain text."""

    def extract(self, file_path: str | Path) -> str:
        path = Path(file_path)
        if not path.is_file():
            raise ExtractionError(f"Resume file not found: {path}")

        suffix = path.suffix.lower()
        try:
            if suffix == ".pdf":
                text = _extract_pdf(path)
            elif suffix == ".docx":
                text = _extract_docx(path)
            elif suffix == ".txt":
                text = path.read_text(encoding="utf-8", errors="ignore")
            else:
                raise ExtractionError(f"Unsupported file type: {suffix or '(none)'}")
        except ExtractionError:
            raise
        except Exception as e:
            raise ExtractionError(f"Failed to extract text from {path.name}: {e}") from e

        text = text.strip()
        if not text:
            raise ExtractionError(f"No text could be extracted from {path.name}")
        logger.debug("Extracted %d characters from %s", len(text), path.name)
        return text


def _extract_pdf(path: Path) -> str:
    from pypdf import PdfReader

    reader = PdfReader(str(path))
    return "\n".join(page.extract_text() or "" for page in reader.pages)


def _extract_docx(path: Path) -> str:
    import docx

    document = docx.Document(str(path))
    return "\n".join(p.text for p in document.paragraphs)
