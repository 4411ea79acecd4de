"""Shared pytest fixtures."""

import pytest

from database import KnowledgeStore
from fakes import FakeEmbeddingProvider, FakeLanguageModel


@pytest.fixture
def store(tmp_path):
    knowledge_store = KnowledgeStore(str(tmp_path / "knowledge.db"))
    knowledge_store.init_db()
    return knowledge_store


@pytest.fixture
def education_entry(store):
    """The single education entry used by the end-to-end scenarios."""
    return store.add_entry(
        "education",
        "Master's programme",
        "EIT Digital Master School",
        keywords=["eit", "master"],
        priority=5,
    )


@pytest.fixture
def failing_llm():
    return FakeLanguageModel()


@pytest.fixture
def offline_provider():
    return FakeEmbeddingProvider(default=None)
