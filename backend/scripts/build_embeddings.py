#!/usr/bin/env python3
"""
为知识库中所有缺少向量的条目生成向量（写入 knowledge_embeddings），
与 POST /api/embeddings/generate 效果相同，适合部署后离线执行一次。
需要在 .env 中配置 LLM_API_KEY（及可选的 LLM_BASE_URL / EMBEDDING_MODEL）。
"""

import asyncio
import os
import sys

SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
BACKEND_DIR = os.path.dirname(SCRIPT_DIR)

sys.path.insert(0, BACKEND_DIR)


async def run(settings, store):
    from llm import open_llm_client
    from pipeline import build_pipeline

    async with open_llm_client(settings) as client:
        pipeline = build_pipeline(settings, store, None, client)
        return await pipeline.retriever.backfill_embeddings()


def main():
    from config import load_settings
    from database import KnowledgeStore

    settings = load_settings()
    if not settings.llm_enabled:
        print("错误：请设置环境变量 LLM_API_KEY 或 OPENAI_API_KEY", file=sys.stderr)
        return 1

    store = KnowledgeStore(settings.database_path)
    store.init_db()

    missing = len(store.entries_missing_embeddings())
    print(f"待生成向量的条目: {missing}")
    if not missing:
        return 0

    generated = asyncio.run(run(settings, store))
    remaining = len(store.entries_missing_embeddings())
    print(f"已生成 {generated} 条向量，剩余 {remaining} 条")
    return 0 if remaining == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
