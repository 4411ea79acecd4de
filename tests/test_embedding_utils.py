import asyncio
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from embedding_utils import EmbeddingCache, EmbeddingProvider, cosine_similarity, text_hash
from fakes import BrokenStore, FakeEmbeddingProvider


# ============================================================
#  cosine_similarity
# ============================================================

def test_cosine_basic_cases():
    assert cosine_similarity([1, 2, 3], [1, 2, 3]) == pytest.approx(1.0)
    assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
    assert cosine_similarity([1, 0], [-1, 0]) == pytest.approx(-1.0)


def test_cosine_is_symmetric():
    a, b = [0.2, 0.7, 0.1], [0.9, 0.1, 0.3]
    assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))


@pytest.mark.parametrize("a, b", [
    (None, [1.0]),
    ([], []),
    ([1.0, 2.0], [1.0]),
    ([0.0, 0.0], [1.0, 1.0]),
])
def test_cosine_degenerate_inputs_return_zero(a, b):
    assert cosine_similarity(a, b) == 0.0


# ============================================================
#  EmbeddingProvider
# ============================================================

def _embedding_client(create):
    return SimpleNamespace(embeddings=SimpleNamespace(create=create))


def test_provider_without_client_returns_none():
    assert asyncio.run(EmbeddingProvider(None, "model").embed("hello")) is None


def test_provider_returns_vector():
    calls = []

    async def create(model, input):
        calls.append((model, input))
        return SimpleNamespace(data=[SimpleNamespace(embedding=[0.1, 0.2])])

    provider = EmbeddingProvider(_embedding_client(create), "text-embedding-3-small")
    assert asyncio.run(provider.embed("hello")) == [0.1, 0.2]
    assert calls == [("text-embedding-3-small", "hello")]


def test_provider_swallows_errors():
    async def create(model, input):
        raise RuntimeError("connection reset")

    assert asyncio.run(EmbeddingProvider(_embedding_client(create), "m").embed("hello")) is None


def test_provider_times_out():
    async def create(model, input):
        await asyncio.sleep(1)

    provider = EmbeddingProvider(_embedding_client(create), "m", timeout=0.01)
    assert asyncio.run(provider.embed("hello")) is None


def test_provider_rejects_empty_payload():
    async def create(model, input):
        return SimpleNamespace(data=[])

    assert asyncio.run(EmbeddingProvider(_embedding_client(create), "m").embed("hello")) is None


# ============================================================
#  EmbeddingCache
# ============================================================

class Clock:
    def __init__(self):
        self.now = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


def test_cache_hit_skips_provider(store):
    provider = FakeEmbeddingProvider(default=[1.0, 0.0])
    cache = EmbeddingCache(store, provider, clock=Clock())

    first = asyncio.run(cache.get_or_create("hello"))
    second = asyncio.run(cache.get_or_create("hello"))

    assert first == second == [1.0, 0.0]
    assert provider.calls == ["hello"]
    assert store.get_cached_embedding(text_hash("hello")).text_snippet == "hello"


def test_stale_entry_is_regenerated_in_place(store):
    clock = Clock()
    provider = FakeEmbeddingProvider(default=[1.0, 0.0])
    cache = EmbeddingCache(store, provider, clock=clock)
    asyncio.run(cache.get_or_create("hello"))

    clock.now += timedelta(days=8)
    provider.default = [0.0, 1.0]
    assert asyncio.run(cache.get_or_create("hello")) == [0.0, 1.0]

    assert len(provider.calls) == 2
    assert store.count_cached_embeddings() == 1
    assert store.get_cached_embedding(text_hash("hello")).created_at == clock.now


def test_entry_younger_than_max_age_is_fresh(store):
    clock = Clock()
    provider = FakeEmbeddingProvider(default=[1.0])
    cache = EmbeddingCache(store, provider, clock=clock)
    asyncio.run(cache.get_or_create("hello"))

    clock.now += timedelta(days=6, hours=23)
    asyncio.run(cache.get_or_create("hello"))
    assert len(provider.calls) == 1


def test_failed_embedding_is_not_cached(store):
    provider = FakeEmbeddingProvider(default=None)
    cache = EmbeddingCache(store, provider)

    assert asyncio.run(cache.get_or_create("hello")) is None
    assert asyncio.run(cache.get_or_create("hello")) is None
    assert store.count_cached_embeddings() == 0
    assert len(provider.calls) == 2


def test_store_failure_is_treated_as_miss():
    provider = FakeEmbeddingProvider(default=[0.5])
    cache = EmbeddingCache(BrokenStore(), provider)
    assert asyncio.run(cache.get_or_create("hello")) == [0.5]
