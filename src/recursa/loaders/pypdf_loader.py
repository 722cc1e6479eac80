# src/recursa/loaders/pypdf_loader.py
"""PDF loader using pypdf - lightweight, pure Python."""

from pathlib import Path

from recursa.exceptions import EmptyDocumentError
from recursa.loaders.base import Loader
from recursa.models import Document


class PyPDFLoader(Loader):
    """Load PDF files using pypdf.

    Page texts are joined with blank lines into one Document, so a page
    break reads as a paragraph break to the chunker.

    Requires: pip install recursa-rag[pdf]
    """

    SUPPORTED_EXTENSIONS = {".pdf"}

    def supports(self, path: str) -> bool:
        """Check if this loader supports the given file."""
        return Path(path).suffix.lower() in self.SUPPORTED_EXTENSIONS

    def load(self, path: str, source_id: str | None = None) -> Document:
        """Load a PDF file.

        Raises:
            ImportError: If pypdf is not installed
            FileNotFoundError: If file does not exist
            EmptyDocumentError: If no page has extractable text
        """
        try:
            from pypdf import PdfReader
        except ImportError:
            raise ImportError(
                "pypdf is required for PDF text extraction. "
                "Install with: pip install recursa-rag[pdf]"
            ) from None

        file_path = Path(path)
        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {path}")

        reader = PdfReader(path)
        pages = [(page.extract_text() or "").strip() for page in reader.pages]
        pages = [p for p in pages if p]
        if not pages:
            raise EmptyDocumentError(f"No extractable text in {path}")

        return Document.combine(pages, source=source_id or str(file_path.resolve()))
