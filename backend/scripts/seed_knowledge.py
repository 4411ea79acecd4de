#!/usr/bin/env python3
"""
将 knowledge/seed.json 中的知识条目导入数据库（knowledge_base 表）。
默认跳过已存在的同类别同标题条目；--reset 先清空知识库及其向量。
导入后可运行 build_embeddings.py 生成向量，或等首次对话时懒生成。
"""

import argparse
import json
import os
import sys

SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
BACKEND_DIR = os.path.dirname(SCRIPT_DIR)
SEED_FILE = os.path.join(BACKEND_DIR, "knowledge", "seed.json")

sys.path.insert(0, BACKEND_DIR)


def load_seed(path):
    """读取种子文件，支持 {"entries": [...]} 或直接为列表"""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return data["entries"] if isinstance(data, dict) else data


def main():
    parser = argparse.ArgumentParser(description="导入知识库种子数据")
    parser.add_argument("--file", default=SEED_FILE, help="种子 JSON 文件路径")
    parser.add_argument("--reset", action="store_true", help="导入前清空知识库")
    args = parser.parse_args()

    from config import load_settings
    from database import KnowledgeStore

    settings = load_settings()
    store = KnowledgeStore(settings.database_path)
    store.init_db()

    if args.reset:
        conn = store.get_connection()
        conn.execute("DELETE FROM knowledge_embeddings")
        conn.execute("DELETE FROM knowledge_base")
        conn.commit()
        conn.close()
        print("已清空知识库")

    existing = {(e.category.value, e.title) for e in store.list_active_entries()}
    entries = load_seed(args.file)
    added = 0
    for item in entries:
        key = (item["category"], item["title"])
        if key in existing:
            print(f"  跳过已存在: [{key[0]}] {key[1]}")
            continue
        try:
            store.add_entry(
                item["category"],
                item["title"],
                item["content"],
                keywords=item.get("keywords", []),
                priority=int(item.get("priority", 0)),
                is_active=item.get("is_active", True),
            )
        except (KeyError, ValueError) as e:
            print(f"  跳过无效条目 {item!r}: {e}")
            continue
        added += 1

    print(f"共导入 {added} 条知识到 {settings.database_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
