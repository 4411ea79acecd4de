"""
RAG 检索模块 —— 从个人知识库中检索与访客问题相关的条目，供大模型参考
关键词检索（类别关键词 + 正文子串）与向量检索（余弦相似度）并行执行，再加权融合排序；
向量侧不可用时自动退化为纯关键词检索
"""

from __future__ import annotations

import asyncio
import logging
import re
import sqlite3
from typing import Dict, List, Optional, Sequence, Tuple

from config import RankingWeights
from embedding_utils import EmbeddingCache, cosine_similarity
from models import CATEGORY_PROFILES, Category, KnowledgeEntry, Scores, SearchResult

logger = logging.getLogger(__name__)

# 去掉标点，保留 ASCII 单词字符、空白和中文
_PUNCTUATION = re.compile(r"[^\w\s\u4e00-\u9fff]", re.ASCII)

SOURCE_CATEGORY = "category_match"
SOURCE_CONTENT = "content_search"
SOURCE_VECTOR = "vector_search"
SOURCE_HYBRID = "hybrid"


def extract_search_terms(text: str, max_terms: int = 10) -> List[str]:
    """小写、去标点、按空白切分，丢弃单字符词，最多保留 max_terms 个"""
    cleaned = _PUNCTUATION.sub(" ", text.lower())
    return [term for term in cleaned.split() if len(term) > 1][:max_terms]


def _dedupe(results: Sequence[SearchResult]) -> List[SearchResult]:
    """按条目 id 去重，保留首次出现的结果"""
    seen = set()
    unique = []
    for result in results:
        if result.id in seen:
            continue
        seen.add(result.id)
        unique.append(result)
    return unique


# ============================================================
#  关键词检索
# ============================================================

class KeywordSearchEngine:

    def __init__(
        self,
        store,
        weights: Optional[RankingWeights] = None,
        category_limit: int = 3,
        content_limit: int = 10,
        max_terms: int = 10,
    ):
        self.store = store
        self.weights = weights or RankingWeights()
        self.category_limit = category_limit
        self.content_limit = content_limit
        self.max_terms = max_terms

    def score_categories(self, query: str) -> List[Tuple[Category, float]]:
        """按关键词命中给类别打分，返回得分最高的若干类别（得分 > 0）"""
        message = query.lower()
        scores: Dict[Category, float] = {}
        for category, profile in CATEGORY_PROFILES.items():
            score = sum(self.weights.en_keyword_hit for k in profile.en_keywords if k in message)
            score += sum(self.weights.zh_keyword_hit for k in profile.zh_keywords if k in message)
            if score > 0:
                scores[category] = score
        ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
        return ranked[:self.category_limit]

    async def _read(self, method, *args) -> List[KnowledgeEntry]:
        """读取失败（如 database is locked）按无结果处理，不影响向量检索一路"""
        try:
            return await asyncio.to_thread(method, *args)
        except sqlite3.Error:
            logger.exception("关键词检索读取知识库失败")
            return []

    async def search(self, query: str, limit: int) -> List[SearchResult]:
        w = self.weights
        results: List[SearchResult] = []

        for category, category_score in self.score_categories(query):
            entries = await self._read(self.store.entries_by_category, category)
            for entry in entries:
                score = category_score * w.category_match + (entry.priority / 10) * w.category_priority
                results.append(SearchResult(entry, Scores(keyword=score), SOURCE_CATEGORY))

        # 类别没覆盖到的条目靠正文子串补充
        terms = extract_search_terms(query, self.max_terms)
        if terms and len(results) < limit:
            entries = await self._read(self.store.search_content, terms, self.content_limit)
            for entry in entries:
                score = w.content_base + (entry.priority / 10) * w.content_priority
                results.append(SearchResult(entry, Scores(keyword=score), SOURCE_CONTENT))

        unique = _dedupe(results)
        unique.sort(key=lambda r: r.score, reverse=True)
        return unique[:limit]


# ============================================================
#  向量检索
# ============================================================

class VectorSearchEngine:

    def __init__(self, store, weights: Optional[RankingWeights] = None):
        self.store = store
        self.weights = weights or RankingWeights()

    async def search(self, query_vector: Optional[Sequence[float]], limit: int) -> List[SearchResult]:
        if query_vector is None:
            return []
        w = self.weights
        results = []
        for entry, vector in await asyncio.to_thread(self.store.entries_with_embeddings):
            similarity = cosine_similarity(query_vector, vector)
            if similarity <= w.similarity_threshold:
                continue
            score = similarity * w.vector_similarity + (entry.priority / 10) * w.vector_priority
            results.append(SearchResult(entry, Scores(vector=score), SOURCE_VECTOR))
        results.sort(key=lambda r: r.score, reverse=True)
        return results[:limit]


# ============================================================
#  融合排序
# ============================================================

def fuse_results(
    vector_results: Sequence[SearchResult],
    keyword_results: Sequence[SearchResult],
    limit: int,
    weights: Optional[RankingWeights] = None,
) -> List[SearchResult]:
    """向量分 * 0.6 + 关键词分 * 0.4；只出现在一路的条目只计该路加权分"""
    w = weights or RankingWeights()
    fused: Dict[int, SearchResult] = {}

    for item in vector_results:
        if item.id in fused:
            continue
        vector_score = item.score
        fused[item.id] = SearchResult(
            item.entry,
            Scores(vector=vector_score, combined=vector_score * w.fusion_vector),
            item.source,
        )

    for item in keyword_results:
        keyword_score = item.score
        existing = fused.get(item.id)
        if existing is None:
            fused[item.id] = SearchResult(
                item.entry,
                Scores(keyword=keyword_score, combined=keyword_score * w.fusion_keyword),
                item.source,
            )
        elif existing.scores.keyword is None:
            existing.scores.keyword = keyword_score
            existing.scores.combined = (existing.scores.vector * w.fusion_vector
                                        + keyword_score * w.fusion_keyword)
            existing.source = SOURCE_HYBRID

    ranked = sorted(fused.values(), key=lambda r: r.score, reverse=True)
    return ranked[:limit]


# ============================================================
#  混合检索（含向量懒生成与降级策略）
# ============================================================

class HybridRetriever:

    def __init__(
        self,
        store,
        cache: EmbeddingCache,
        keyword_engine: KeywordSearchEngine,
        vector_engine: VectorSearchEngine,
        weights: Optional[RankingWeights] = None,
        embedding_batch_size: int = 10,
    ):
        self.store = store
        self.cache = cache
        self.keyword_engine = keyword_engine
        self.vector_engine = vector_engine
        self.weights = weights or RankingWeights()
        self.embedding_batch_size = embedding_batch_size

    async def backfill_embeddings(self, batch_size: Optional[int] = None) -> int:
        """为缺少向量的条目生成向量，返回本次生成的数量；向量接口失败即停止本批"""
        missing = await asyncio.to_thread(self.store.entries_missing_embeddings, batch_size)
        generated = 0
        for entry in missing:
            vector = await self.cache.get_or_create(entry.embedding_text)
            if vector is None:
                logger.info("向量接口不可用，剩余 %d 条待下次生成", len(missing) - generated)
                break
            await asyncio.to_thread(self.store.save_embedding, entry.id, vector)
            generated += 1
            logger.info("已生成知识条目向量: %s", entry.title)
        return generated

    async def ensure_embeddings(self) -> int:
        """检索前的小批量懒生成，任何失败都不影响检索"""
        try:
            return await self.backfill_embeddings(self.embedding_batch_size)
        except Exception:
            logger.exception("知识条目向量生成失败")
            return 0

    async def _vector_search(self, query: str, limit: int) -> List[SearchResult]:
        try:
            query_vector = await self.cache.get_or_create(query)
            return await self.vector_engine.search(query_vector, limit)
        except Exception:
            logger.exception("向量检索不可用，仅使用关键词检索")
            return []

    async def _hybrid_search(self, query: str, limit: int) -> List[SearchResult]:
        await self.ensure_embeddings()
        vector_results, keyword_results = await asyncio.gather(
            self._vector_search(query, limit),
            self.keyword_engine.search(query, limit),
        )
        logger.info("向量检索 %d 条，关键词检索 %d 条", len(vector_results), len(keyword_results))
        return fuse_results(vector_results, keyword_results, limit, self.weights)

    async def search(self, query: str, limit: int = 6) -> List[SearchResult]:
        """混合检索；失败退回纯关键词检索，再失败返回空列表，不抛异常"""
        try:
            return await self._hybrid_search(query, limit)
        except Exception:
            logger.exception("混合检索失败，退回关键词检索")
        try:
            return await self.keyword_engine.search(query, limit)
        except Exception:
            logger.exception("关键词检索失败")
            return []
