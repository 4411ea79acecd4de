"""
问答流水线 —— 语言判断 → （中文问题译成英文）→ 混合检索 → 生成回复 → 后台记录对话
每个请求构建一个实例，依赖全部由构造参数传入
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional

from config import Settings
from embedding_utils import EmbeddingCache, EmbeddingProvider
from language import detect_language, parse_language
from llm import LanguageModel
from models import Language, SearchResult
from rag import HybridRetriever, KeywordSearchEngine, VectorSearchEngine
from recorder import ConversationRecorder
from responder import Persona, ResponseGenerator
from translator import QueryTranslator

logger = logging.getLogger(__name__)

# 返回给前端展示的参考来源条数
SOURCES_SHOWN = 3


@dataclass
class ChatResult:
    response: str
    language: Language
    search_query: str
    results: List[SearchResult] = field(default_factory=list)
    processing_time_ms: int = 0

    def to_dict(self) -> dict:
        return {
            "response": self.response,
            "relevantSources": [r.to_source() for r in self.results[:SOURCES_SHOWN]],
            "metadata": {
                "language": self.language.value,
                "searchQuery": self.search_query,
                "knowledgeItemsUsed": len(self.results),
                "processingTimeMs": self.processing_time_ms,
            },
        }


def resolve_language(message: str, language: Optional[str] = "auto", force_language: Optional[str] = None) -> Language:
    """forceLanguage 优先，其次是非 auto 的 language，最后才自动检测"""
    forced = parse_language(force_language)
    if forced is not None:
        return forced
    if language and language != "auto":
        hinted = parse_language(language)
        if hinted is not None:
            return hinted
        logger.warning("无法识别的语言参数: %r，改为自动检测", language)
    return detect_language(message)


class ChatPipeline:

    def __init__(
        self,
        retriever: HybridRetriever,
        responder: ResponseGenerator,
        recorder: Optional[ConversationRecorder] = None,
        translator: Optional[QueryTranslator] = None,
        knowledge_language: Language = Language.EN,
        search_limit: int = 6,
    ):
        self.retriever = retriever
        self.responder = responder
        self.recorder = recorder
        self.translator = translator
        self.knowledge_language = knowledge_language
        self.search_limit = search_limit

    async def prepare_search_query(self, message: str, language: Language) -> str:
        if (self.translator is None or language != Language.ZH
                or self.knowledge_language != Language.EN):
            return message
        translated = await self.translator.translate_to_english(message)
        logger.info("中文问题已转为英文检索: %s", translated)
        return translated

    async def handle(
        self,
        message: str,
        session_id: Optional[str] = None,
        language: Optional[str] = "auto",
        force_language: Optional[str] = None,
    ) -> ChatResult:
        started = time.perf_counter()
        logger.info("处理聊天请求: %s", message[:100])

        detected = resolve_language(message, language, force_language)
        search_query = await self.prepare_search_query(message, detected)

        # 用英文检索，但按原问题的语言作答
        results = await self.retriever.search(search_query, self.search_limit)
        logger.info("检索到 %d 条相关知识", len(results))

        reply = await self.responder.generate(message, results, detected, session_id, search_query)

        if self.recorder is not None:
            try:
                self.recorder.record(session_id, message, reply, detected.value)
            except Exception:
                # 记录失败（如线程池已关闭）不影响已生成的回复
                logger.exception("提交对话记录失败")

        return ChatResult(
            response=reply,
            language=detected,
            search_query=search_query,
            results=list(results),
            processing_time_ms=int((time.perf_counter() - started) * 1000),
        )


def build_pipeline(settings: Settings, store, recorder: Optional[ConversationRecorder], client) -> ChatPipeline:
    """按配置组装流水线；client 为 AsyncOpenAI 实例或 None（未配置模型）"""
    weights = settings.weights
    llm = LanguageModel(client, settings.chat_model, settings.request_timeout)
    provider = EmbeddingProvider(client, settings.embedding_model, settings.request_timeout)
    cache = EmbeddingCache(store, provider, max_age=timedelta(days=settings.cache_max_age_days))

    retriever = HybridRetriever(
        store,
        cache,
        KeywordSearchEngine(
            store,
            weights,
            category_limit=settings.category_limit,
            content_limit=settings.content_search_limit,
            max_terms=settings.max_search_terms,
        ),
        VectorSearchEngine(store, weights),
        weights,
        embedding_batch_size=settings.embedding_batch_size,
    )

    persona = Persona(settings.owner_name, settings.owner_short_name, settings.owner_name_zh)
    responder = ResponseGenerator(
        llm,
        persona,
        temperature=settings.temperature,
        top_k=settings.top_k,
        top_p=settings.top_p,
        max_tokens=settings.max_output_tokens,
        relevance_threshold=settings.relevance_threshold,
        context_limit=settings.search_limit,
    )

    translator = None
    if settings.translate_queries:
        translator = QueryTranslator(
            llm,
            settings.owner_name,
            top_k=20 if settings.top_k is not None else None,
        )

    return ChatPipeline(
        retriever,
        responder,
        recorder=recorder,
        translator=translator,
        knowledge_language=parse_language(settings.knowledge_language) or Language.EN,
        search_limit=settings.search_limit,
    )
