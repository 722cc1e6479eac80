# src/recursa/loaders/text.py
"""Text and Markdown file loader."""

from pathlib import Path

from recursa.exceptions import EmptyDocumentError
from recursa.loaders.base import Loader
from recursa.models import Document


class TextLoader(Loader):
    """Load plain text and markdown files.

    The file is kept whole. Splitting is the chunker's job, and chunk
    spans are offsets into exactly this text.
    """

    SUPPORTED_EXTENSIONS = {".txt", ".md", ".markdown", ".text"}

    def __init__(self, encoding: str = "utf-8") -> None:
        self.encoding = encoding

    def supports(self, path: str) -> bool:
        """Check if this loader supports the given file."""
        return Path(path).suffix.lower() in self.SUPPORTED_EXTENSIONS

    def load(self, path: str, source_id: str | None = None) -> Document:
        """Load a text file.

        Args:
            path: Path to the file to load
            source_id: Optional custom source identifier. If not provided,
                      the absolute path will be used as the source.
        """
        file_path = Path(path)

        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {path}")

        content = file_path.read_text(encoding=self.encoding)
        if not content.strip():
            raise EmptyDocumentError(f"No text in {path}")

        # Normalize line endings so spans mean the same thing on every platform
        content = content.replace("\r\n", "\n")
        return Document(text=content, source=source_id or str(file_path.resolve()))
