"""
向量工具：
- EmbeddingProvider：调用 OpenAI 兼容的 embeddings 接口，把文本转成定长向量
- EmbeddingCache：以文本 SHA-256 为键的向量缓存，7 天过期，失败结果不入缓存
- cosine_similarity：余弦相似度（numpy 实现）
检索用的向量一律经 EmbeddingCache 获取，不直接调用 provider。
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence

import numpy as np
from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

# 缓存里保存的原文片段长度（仅用于排查问题）
SNIPPET_LENGTH = 100


def text_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def cosine_similarity(a: Optional[Sequence[float]], b: Optional[Sequence[float]]) -> float:
    """dot(a, b) / (|a| * |b|)；空向量、零向量或维度不一致时返回 0"""
    if a is None or b is None or len(a) == 0 or len(a) != len(b):
        return 0.0
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0:
        return 0.0
    return float(np.dot(va, vb) / norm)


class EmbeddingProvider:
    """文本 -> 向量。接口不可用或返回异常时给出 None，不抛异常"""

    def __init__(self, client: Optional[AsyncOpenAI], model: str, timeout: float = 30.0):
        self.client = client
        self.model = model
        self.timeout = timeout

    async def embed(self, text: str) -> Optional[List[float]]:
        if self.client is None:
            return None
        try:
            resp = await asyncio.wait_for(
                self.client.embeddings.create(model=self.model, input=text),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("向量接口超时（%ss）", self.timeout)
            return None
        except Exception as e:
            logger.warning("向量接口调用失败: %s", e)
            return None

        if not resp.data or not resp.data[0].embedding:
            logger.warning("向量接口返回内容无效")
            return None
        return list(resp.data[0].embedding)


class EmbeddingCache:
    """get_or_create：命中且未过期直接返回，否则调用 provider 并覆盖写入缓存"""

    def __init__(
        self,
        store,
        provider: EmbeddingProvider,
        max_age: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self.provider = provider
        self.max_age = max_age
        self.clock = clock

    def _is_fresh(self, created_at: datetime) -> bool:
        return self.clock() - created_at < self.max_age

    async def get_or_create(self, text: str) -> Optional[List[float]]:
        key = text_hash(text)

        try:
            cached = await asyncio.to_thread(self.store.get_cached_embedding, key)
        except Exception:
            logger.exception("读取向量缓存失败，按未命中处理")
            cached = None

        if cached is not None and self._is_fresh(cached.created_at):
            return cached.vector

        vector = await self.provider.embed(text)
        if vector is None:
            # 失败结果不写缓存，避免一次故障长期污染
            return None

        try:
            await asyncio.to_thread(
                self.store.put_cached_embedding, key, text[:SNIPPET_LENGTH], vector, self.clock()
            )
        except Exception:
            logger.exception("写入向量缓存失败")
        return vector
