# src/recursa/loaders/base.py
"""Loader abstract base class."""

from abc import ABC, abstractmethod

from recursa.models import Document


class Loader(ABC):
    """Abstract base class for reading a file into a Document."""

    @abstractmethod
    def load(self, path: str, source_id: str | None = None) -> Document:
        """Load a file as one Document.

        Args:
            path: Path to the file to load
            source_id: Optional custom source identifier. If not provided,
                      the absolute path will be used as the source.

        Raises:
            FileNotFoundError: If the file does not exist
            EmptyDocumentError: If the file contains no text
        """
        ...

    @abstractmethod
    def supports(self, path: str) -> bool:
        """Check if this loader supports the given path."""
        ...
