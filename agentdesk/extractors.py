"""
Document Extraction Module

Converts uploaded file bytes into plain text for indexing.

Supported formats:
- PDF (.pdf) via LangChain's PyPDFLoader
- Word documents (.docx) via LangChain's Docx2txtLoader
- Excel workbooks (.xlsx) via openpyxl
- Plain text (.txt, .md, .csv, .json)

Legacy Word (.doc) and anything else are reported as unsupported. The
processor never raises: failures come back as a ProcessedDocument with a
placeholder content and processing_status "error" or "unsupported", and the
placeholder starts with a marker the retriever uses to skip it.
"""

import io
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Optional, Any

from langchain_community.document_loaders import PyPDFLoader, Docx2txtLoader

from agentdesk.exceptions import ExtractionError

logger = logging.getLogger(__name__)

UNSUPPORTED_MARKER = "[UNSUPPORTED FORMAT"
ERROR_MARKER = "[PROCESSING ERROR"
FAILURE_MARKERS = (UNSUPPORTED_MARKER, ERROR_MARKER)

MIME_FORMATS = {
    "application/pdf": "pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
    "application/msword": "doc",
    "text/plain": "text",
    "text/markdown": "text",
    "text/csv": "text",
    "application/json": "text",
}

EXTENSION_FORMATS = {
    ".pdf": "pdf",
    ".docx": "docx",
    ".xlsx": "xlsx",
    ".doc": "doc",
    ".txt": "text",
    ".md": "text",
    ".csv": "text",
    ".json": "text",
}


@dataclass
class ProcessedDocument:
    """
    Result of extracting one uploaded file.

    Attributes:
        content: Extracted text, or a placeholder on failure
        status: "success", "error" or "unsupported"
        format: Resolved format tag (None if unknown)
        error: Error message for failed extractions
    """
    content: str
    status: str = "success"
    format: Optional[str] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "success"


def is_failure_placeholder(content: Optional[str]) -> bool:
    """True if content is a placeholder written for a failed extraction."""
    return bool(content) and content.lstrip().startswith(FAILURE_MARKERS)


def resolve_format(filename: str, mime_type: Optional[str] = None) -> Optional[str]:
    """
    Resolve a format tag from the MIME type, falling back to the extension.

    Returns:
        "pdf", "docx", "xlsx", "text", "doc" or None
    """
    if mime_type:
        base = mime_type.split(";")[0].strip().lower()
        if base in MIME_FORMATS:
            return MIME_FORMATS[base]
        if base.startswith("text/"):
            return "text"
    return EXTENSION_FORMATS.get(Path(filename or "").suffix.lower())


def _load_with(loader_class, data: bytes, suffix: str) -> str:
    """Run a LangChain file loader over bytes spooled to a temporary file."""
    fd, tmp_path = tempfile.mkstemp(suffix=suffix)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        documents = loader_class(tmp_path).load()
        return "\n\n".join(doc.page_content for doc in documents).strip()
    finally:
        os.unlink(tmp_path)


def extract_pdf(data: bytes, filename: str) -> str:
    try:
        return _load_with(PyPDFLoader, data, ".pdf")
    except Exception as e:
        raise ExtractionError(f"Could not read PDF {filename}: {e}") from e


def extract_docx(data: bytes, filename: str) -> str:
    try:
        return _load_with(Docx2txtLoader, data, ".docx")
    except Exception as e:
        raise ExtractionError(f"Could not read DOCX {filename}: {e}") from e


def extract_xlsx(data: bytes, filename: str) -> str:
    """Render every sheet as a header line followed by ' | '-joined rows."""
    try:
        import openpyxl
    except ImportError:
        raise ImportError("openpyxl is required for XLSX processing. Install with: pip install openpyxl")

    wb = None
    try:
        wb = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        parts = []
        for sheet_name in wb.sheetnames:
            parts.append(f"=== SHEET: {sheet_name} ===")
            for row in wb[sheet_name].iter_rows(values_only=True):
                row_text = " | ".join(str(cell) if cell is not None else "" for cell in row)
                if row_text.strip(" |"):
                    parts.append(row_text)
            parts.append("")
        return "\n".join(parts).strip()
    except Exception as e:
        raise ExtractionError(f"Could not read XLSX {filename}: {e}") from e
    finally:
        if wb is not None:
            wb.close()


def extract_text(data: bytes, filename: str) -> str:
    return data.decode("utf-8", errors="replace").strip()


def extract_doc(data: bytes, filename: str) -> str:
    raise ExtractionError(
        f"Legacy Word format is not supported ({filename}); save it as .docx or PDF",
        unsupported=True,
    )


class DocumentProcessor:
    """
    Dispatches uploaded files to the extractor for their format.

    Example:
        processor = DocumentProcessor()
        result = processor.process(data, "prices.xlsx", mime_type)
        if result.ok:
            print(result.content[:200])
    """

    def __init__(self, extractors: Optional[Dict[str, Callable[[bytes, str], str]]] = None):
        self.extractors: Dict[str, Callable[[bytes, str], str]] = {
            "pdf": extract_pdf,
            "docx": extract_docx,
            "xlsx": extract_xlsx,
            "text": extract_text,
            "doc": extract_doc,
        }
        if extractors:
            self.extractors.update(extractors)

    def process(
        self,
        data: bytes,
        filename: str,
        mime_type: Optional[str] = None,
    ) -> ProcessedDocument:
        """
        Extract plain text from an uploaded file.

        Args:
            data: Raw file bytes
            filename: Original file name (used for extension fallback)
            mime_type: Declared MIME type

        Returns:
            ProcessedDocument (never raises for bad input)
        """
        fmt = resolve_format(filename, mime_type)
        extractor = self.extractors.get(fmt) if fmt else None

        if extractor is None:
            logger.warning(f"Unsupported file format: {filename} ({mime_type})")
            return ProcessedDocument(
                content=f"{UNSUPPORTED_MARKER}: {filename} ({mime_type or 'unknown type'})]",
                status="unsupported",
                format=fmt,
                error=f"Unsupported file format: {mime_type or Path(filename).suffix}",
            )

        try:
            content = extractor(data, filename)
        except ExtractionError as e:
            status = "unsupported" if e.unsupported else "error"
            marker = UNSUPPORTED_MARKER if e.unsupported else ERROR_MARKER
            logger.error(f"Extraction failed for {filename} ({fmt}): {e}")
            return ProcessedDocument(
                content=f"{marker}: {filename}] {e}",
                status=status,
                format=fmt,
                error=str(e),
            )

        logger.info(f"Extracted {len(content)} chars from {filename} ({fmt})")
        return ProcessedDocument(
            content=content,
            format=fmt,
            metadata={"characters": len(content)},
        )
