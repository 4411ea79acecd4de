"""Test doubles for the language model and embedding provider."""

from llm import LanguageModelError
from embedding_utils import EmbeddingCache
from pipeline import ChatPipeline
from rag import HybridRetriever, KeywordSearchEngine, VectorSearchEngine
from responder import Persona, ResponseGenerator
from translator import QueryTranslator


class FakeLanguageModel:
    """Replies from a queue or a handler(prompt); raises LanguageModelError when out of replies."""

    available = True

    def __init__(self, replies=None, handler=None, error=None):
        self.replies = list(replies or [])
        self.handler = handler
        self.error = error
        self.prompts = []
        self.calls = []

    async def complete(self, prompt, **kwargs):
        self.prompts.append(prompt)
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        if self.handler is not None:
            return self.handler(prompt)
        if not self.replies:
            raise LanguageModelError("no reply configured")
        return self.replies.pop(0)


class FakeEmbeddingProvider:
    def __init__(self, vectors=None, default=None):
        self.vectors = dict(vectors or {})
        self.default = default
        self.calls = []

    async def embed(self, text):
        self.calls.append(text)
        return self.vectors.get(text, self.default)


class BrokenStore:
    """Every store call fails like an unreachable database."""

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise RuntimeError(f"store unavailable: {name}")
        return fail


def make_retriever(store, provider, batch_size=10):
    cache = EmbeddingCache(store, provider)
    return HybridRetriever(
        store,
        cache,
        KeywordSearchEngine(store),
        VectorSearchEngine(store),
        embedding_batch_size=batch_size,
    )


def make_pipeline(store, llm, provider, recorder=None, translate=True):
    return ChatPipeline(
        make_retriever(store, provider),
        ResponseGenerator(llm, Persona()),
        recorder=recorder,
        translator=QueryTranslator(llm, "Yiming Li") if translate else None,
    )
