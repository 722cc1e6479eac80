# tests/stores/test_vector_stores.py
"""Tests for the in-memory and Chroma vector stores."""

import os

import pytest

from recursa.stores import InMemoryVectorStore


@pytest.fixture
def memory_store():
    return InMemoryVectorStore()


class TestInMemoryVectorStore:
    def test_query_ranks_by_cosine(self, memory_store):
        memory_store.put("a", [1.0, 0.0])
        memory_store.put("b", [0.7, 0.7])
        memory_store.put("c", [0.0, 1.0])

        assert memory_store.query([1.0, 0.1], k=2) == ["a", "b"]

    def test_where_filter(self, memory_store):
        memory_store.put("r1:0", [1.0, 0.0], {"run_id": "r1"})
        memory_store.put("r2:0", [1.0, 0.0], {"run_id": "r2"})

        assert memory_store.query([1.0, 0.0], k=5, where={"run_id": "r2"}) == ["r2:0"]

    def test_put_overwrites(self, memory_store):
        memory_store.put("a", [1.0, 0.0])
        memory_store.put("a", [0.0, 1.0])

        assert memory_store.count() == 1
        assert memory_store.query([0.0, 1.0], k=1) == ["a"]

    def test_delete(self, memory_store):
        memory_store.put("a", [1.0, 0.0])
        memory_store.put("b", [0.0, 1.0])

        memory_store.delete(["a"])

        assert memory_store.count() == 1
        assert memory_store.query([1.0, 0.0], k=5) == ["b"]

    def test_empty_query(self, memory_store):
        assert memory_store.query([1.0], k=3) == []


class TestChromaVectorStore:
    @pytest.fixture
    def chroma_store(self, temp_dir):
        pytest.importorskip("chromadb", reason="Tests require chromadb package")
        from recursa.stores import ChromaVectorStore

        store = ChromaVectorStore(os.path.join(temp_dir, "chroma"))
        yield store
        store.close()

    def test_put_query_delete(self, chroma_store):
        chroma_store.put("r1:0", [1.0, 0.0, 0.0], {"run_id": "r1"})
        chroma_store.put("r1:1", [0.0, 1.0, 0.0], {"run_id": "r1"})
        chroma_store.put("r2:0", [1.0, 0.0, 0.0], {"run_id": "r2"})

        assert chroma_store.query([0.9, 0.1, 0.0], k=1, where={"run_id": "r1"}) == ["r1:0"]

        chroma_store.delete(["r1:0"])
        assert chroma_store.count() == 2
