"""
配置模块 —— 从环境变量（及项目根目录的 .env）读取服务配置
检索打分用到的权重、阈值都集中在 RankingWeights，便于按需调参
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

_BASE = os.path.dirname(os.path.abspath(__file__))

# 加载 .env（从上级目录）
load_dotenv(os.path.join(_BASE, "..", ".env"))


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class RankingWeights:
    """检索各阶段的打分常数（经验值）"""
    # 关键词检索：类别命中
    category_match: float = 0.8
    category_priority: float = 0.2
    zh_keyword_hit: float = 1.1
    en_keyword_hit: float = 1.0
    # 关键词检索：正文子串命中
    content_base: float = 0.6
    content_priority: float = 0.1
    # 向量检索
    vector_similarity: float = 0.9
    vector_priority: float = 0.1
    similarity_threshold: float = 0.3
    # 融合
    fusion_vector: float = 0.6
    fusion_keyword: float = 0.4


@dataclass
class Settings:
    """服务运行所需的全部配置"""
    # 大模型 / 向量服务（OpenAI 兼容接口）
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    chat_model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"
    request_timeout: float = 30.0

    # 生成参数
    temperature: float = 0.7
    top_k: Optional[int] = 40
    top_p: float = 0.95
    max_output_tokens: int = 1024

    # 查询翻译
    translate_queries: bool = True
    knowledge_language: str = "en"

    # 检索
    search_limit: int = 6
    category_limit: int = 3
    content_search_limit: int = 10
    max_search_terms: int = 10
    relevance_threshold: float = 0.3
    embedding_batch_size: int = 10
    cache_max_age_days: int = 7
    weights: RankingWeights = field(default_factory=RankingWeights)

    # 站点主人
    owner_name: str = "Yiming Li"
    owner_short_name: str = "Yiming"
    owner_name_zh: str = "李一鸣"

    # 运行环境
    database_path: str = os.path.join(_BASE, "portfolio_chat.db")
    log_level: str = "INFO"
    debug: bool = False
    port: int = 5000

    @property
    def llm_enabled(self) -> bool:
        return bool(self.api_key)


def load_settings() -> Settings:
    """从环境变量构建 Settings，未设置的项使用默认值"""
    defaults = Settings()
    weights = RankingWeights(
        similarity_threshold=float(os.getenv("SIMILARITY_THRESHOLD", defaults.weights.similarity_threshold)),
        fusion_vector=float(os.getenv("FUSION_VECTOR_WEIGHT", defaults.weights.fusion_vector)),
        fusion_keyword=float(os.getenv("FUSION_KEYWORD_WEIGHT", defaults.weights.fusion_keyword)),
    )
    top_k = os.getenv("LLM_TOP_K", str(defaults.top_k)).strip()

    return Settings(
        api_key=os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY"),
        base_url=os.getenv("LLM_BASE_URL") or os.getenv("OPENAI_BASE_URL"),
        chat_model=os.getenv("CHAT_MODEL", defaults.chat_model),
        embedding_model=os.getenv("EMBEDDING_MODEL", defaults.embedding_model),
        request_timeout=float(os.getenv("REQUEST_TIMEOUT", defaults.request_timeout)),
        # LLM_TOP_K 设为空字符串可关闭 top_k（部分接口不接受该参数）
        top_k=int(top_k) if top_k else None,
        translate_queries=_env_bool("TRANSLATE_QUERIES", defaults.translate_queries),
        knowledge_language=os.getenv("KNOWLEDGE_LANGUAGE", defaults.knowledge_language),
        search_limit=int(os.getenv("SEARCH_LIMIT", defaults.search_limit)),
        relevance_threshold=float(os.getenv("RELEVANCE_THRESHOLD", defaults.relevance_threshold)),
        embedding_batch_size=int(os.getenv("EMBEDDING_BATCH_SIZE", defaults.embedding_batch_size)),
        cache_max_age_days=int(os.getenv("CACHE_MAX_AGE_DAYS", defaults.cache_max_age_days)),
        weights=weights,
        owner_name=os.getenv("OWNER_NAME", defaults.owner_name),
        owner_short_name=os.getenv("OWNER_SHORT_NAME", defaults.owner_short_name),
        owner_name_zh=os.getenv("OWNER_NAME_ZH", defaults.owner_name_zh),
        database_path=os.getenv("DB_PATH") or defaults.database_path,
        log_level=os.getenv("LOG_LEVEL", defaults.log_level),
        debug=_env_bool("DEBUG", defaults.debug),
        port=int(os.getenv("PORT", defaults.port)),
    )
