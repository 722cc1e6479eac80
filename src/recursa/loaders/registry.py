# src/recursa/loaders/registry.py
"""Loader registry for auto-selecting file loaders."""

from recursa.loaders.base import Loader
from recursa.loaders.text import TextLoader
from recursa.models import Document


class LoaderRegistry:
    """Registry for file loaders.

    Picks the first registered loader whose supports() accepts the path.
    """

    def __init__(self) -> None:
        self._loaders: list[Loader] = []

    def register(self, loader: Loader) -> None:
        self._loaders.append(loader)

    def find_loader(self, path: str) -> Loader | None:
        for loader in self._loaders:
            if loader.supports(path):
                return loader
        return None

    def load(self, path: str, source_id: str | None = None) -> Document:
        """Load a file using the appropriate loader.

        Raises:
            ValueError: If no loader supports the file type
        """
        loader = self.find_loader(path)
        if loader is None:
            raise ValueError(f"No loader found for: {path}")
        return loader.load(path, source_id)

    def load_many(self, paths: list[str]) -> list[Document]:
        return [self.load(path) for path in paths]

    @classmethod
    def default(cls) -> "LoaderRegistry":
        """Create a registry with TextLoader plus PyPDFLoader when pypdf is installed."""
        registry = cls()
        registry.register(TextLoader())

        try:
            import pypdf  # noqa: F401
        except ImportError:
            pass
        else:
            from recursa.loaders.pypdf_loader import PyPDFLoader

            registry.register(PyPDFLoader())

        return registry
