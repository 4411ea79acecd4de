"""
SQLite 数据库模块 —— 知识库、知识向量、向量缓存、对话记录与统计事件的持久化存储
"""

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Tuple

from models import CachedEmbedding, Category, KnowledgeEntry

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_time(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _escape_like(term: str) -> str:
    """转义 LIKE 通配符，检索词按字面匹配"""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class KnowledgeStore:
    """对 sqlite 文件的薄封装；每次操作单独建立连接，可在线程池中调用"""

    def __init__(self, db_path: str):
        self.db_path = db_path

    def get_connection(self):
        """获取数据库连接"""
        conn = sqlite3.connect(self.db_path)
        # 让查询结果可以通过列名访问
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def init_db(self):
        """初始化数据库表结构"""
        conn = self.get_connection()
        cursor = conn.cursor()

        # 知识库
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS knowledge_base (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                category TEXT NOT NULL,
                title TEXT NOT NULL,
                content TEXT NOT NULL,
                keywords TEXT NOT NULL DEFAULT '',
                priority INTEGER NOT NULL DEFAULT 0,
                is_active INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL
            )
        """)

        # 知识条目向量（一条知识对应一个向量）
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS knowledge_embeddings (
                knowledge_id INTEGER PRIMARY KEY,
                embedding TEXT NOT NULL,
                created_at TEXT NOT NULL,
                FOREIGN KEY (knowledge_id) REFERENCES knowledge_base(id) ON DELETE CASCADE
            )
        """)

        # 向量缓存，以文本哈希为键
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS embedding_cache (
                text_hash TEXT PRIMARY KEY,
                text_snippet TEXT NOT NULL DEFAULT '',
                embedding TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)

        # 对话记录（只追加）
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS conversations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT NOT NULL,
                role TEXT NOT NULL,
                content TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS chat_analytics (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT NOT NULL,
                event_type TEXT NOT NULL,
                event_data TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_conversations_session ON conversations (session_id)"
        )

        conn.commit()
        conn.close()

    # ============================================================
    #  知识库
    # ============================================================

    def add_entry(self, category, title, content, keywords: Iterable[str] = (), priority=0, is_active=True):
        """新增知识条目（供初始化脚本与测试使用），返回新条目的 id"""
        conn = self.get_connection()
        cursor = conn.cursor()

        cursor.execute(
            "INSERT INTO knowledge_base (category, title, content, keywords, priority, is_active, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (Category(category).value, title, content, ",".join(keywords), priority,
             1 if is_active else 0, _now()),
        )
        entry_id = cursor.lastrowid

        conn.commit()
        conn.close()
        return entry_id

    def _rows_to_entries(self, rows) -> List[KnowledgeEntry]:
        entries = []
        for row in rows:
            try:
                entries.append(KnowledgeEntry.from_row(row))
            except ValueError:
                logger.warning("知识条目 %s 的类别无法识别: %r，已跳过", row["id"], row["category"])
        return entries

    def list_active_entries(self) -> List[KnowledgeEntry]:
        """所有启用的知识条目，按优先级倒序、类别正序"""
        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute(
            "SELECT * FROM knowledge_base WHERE is_active = 1 ORDER BY priority DESC, category ASC"
        )
        rows = cursor.fetchall()
        conn.close()
        return self._rows_to_entries(rows)

    def entries_by_category(self, category: Category) -> List[KnowledgeEntry]:
        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute(
            "SELECT * FROM knowledge_base WHERE is_active = 1 AND category = ? ORDER BY priority DESC",
            (Category(category).value,),
        )
        rows = cursor.fetchall()
        conn.close()
        return self._rows_to_entries(rows)

    def search_content(self, terms: Sequence[str], limit: int = 10) -> List[KnowledgeEntry]:
        """正文 / 关键词 / 标题 任一包含任一检索词即命中"""
        if not terms:
            return []
        patterns = [f"%{_escape_like(term)}%" for term in terms]
        clauses = []
        for column in ("content", "keywords", "title"):
            clauses.extend(f"LOWER({column}) LIKE ? ESCAPE '\\'" for _ in terms)

        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute(
            "SELECT * FROM knowledge_base WHERE is_active = 1 AND ("
            + " OR ".join(clauses)
            + ") ORDER BY priority DESC LIMIT ?",
            (*patterns, *patterns, *patterns, limit),
        )
        rows = cursor.fetchall()
        conn.close()
        return self._rows_to_entries(rows)

    # ============================================================
    #  知识向量
    # ============================================================

    def entries_missing_embeddings(self, limit: Optional[int] = None) -> List[KnowledgeEntry]:
        """尚未生成向量的启用条目；limit 为 None 时不限数量"""
        sql = """
            SELECT kb.* FROM knowledge_base kb
            LEFT JOIN knowledge_embeddings ke ON kb.id = ke.knowledge_id
            WHERE ke.knowledge_id IS NULL AND kb.is_active = 1
            ORDER BY kb.priority DESC
        """
        params: tuple = ()
        if limit is not None:
            sql += " LIMIT ?"
            params = (limit,)

        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute(sql, params)
        rows = cursor.fetchall()
        conn.close()
        return self._rows_to_entries(rows)

    def entries_with_embeddings(self) -> List[Tuple[KnowledgeEntry, List[float]]]:
        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT kb.*, ke.embedding FROM knowledge_base kb
            JOIN knowledge_embeddings ke ON kb.id = ke.knowledge_id
            WHERE kb.is_active = 1
        """)
        rows = cursor.fetchall()
        conn.close()

        pairs = []
        for row in rows:
            try:
                pairs.append((KnowledgeEntry.from_row(row), json.loads(row["embedding"])))
            except ValueError:
                # json.JSONDecodeError 也是 ValueError
                logger.warning("知识条目 %s 的向量数据无效，已跳过", row["id"])
        return pairs

    def save_embedding(self, knowledge_id: int, vector: Sequence[float]):
        conn = self.get_connection()
        conn.execute(
            "INSERT OR REPLACE INTO knowledge_embeddings (knowledge_id, embedding, created_at) "
            "VALUES (?, ?, ?)",
            (knowledge_id, json.dumps(list(vector)), _now()),
        )
        conn.commit()
        conn.close()

    # ============================================================
    #  向量缓存
    # ============================================================

    def get_cached_embedding(self, text_hash: str) -> Optional[CachedEmbedding]:
        """按哈希取缓存，不判断是否过期（由调用方决定）"""
        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM embedding_cache WHERE text_hash = ?", (text_hash,))
        row = cursor.fetchone()
        conn.close()
        if not row:
            return None
        return CachedEmbedding(
            text_hash=row["text_hash"],
            vector=json.loads(row["embedding"]),
            created_at=_parse_time(row["created_at"]),
            text_snippet=row["text_snippet"],
        )

    def put_cached_embedding(self, text_hash: str, text_snippet: str, vector: Sequence[float],
                             created_at: Optional[datetime] = None):
        """写入缓存，同一哈希覆盖旧记录"""
        created = (created_at or datetime.now(timezone.utc)).isoformat()
        conn = self.get_connection()
        conn.execute(
            "INSERT OR REPLACE INTO embedding_cache (text_hash, text_snippet, embedding, created_at) "
            "VALUES (?, ?, ?, ?)",
            (text_hash, text_snippet, json.dumps(list(vector)), created),
        )
        conn.commit()
        conn.close()

    def count_cached_embeddings(self) -> int:
        conn = self.get_connection()
        count = conn.execute("SELECT COUNT(*) FROM embedding_cache").fetchone()[0]
        conn.close()
        return count

    # ============================================================
    #  对话记录
    # ============================================================

    def add_message(self, session_id: str, role: str, content: str):
        """向会话追加一条消息"""
        now = _now()
        conn = self.get_connection()
        conn.execute(
            "INSERT INTO conversations (session_id, role, content, created_at) VALUES (?, ?, ?, ?)",
            (session_id, role, content, now),
        )
        conn.commit()
        conn.close()
        return {"role": role, "content": content, "created_at": now}

    def get_recent_messages(self, session_id: str, limit: int = 50) -> List[dict]:
        """最近的 limit 条消息，按时间正序返回"""
        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute(
            "SELECT role, content, created_at FROM conversations WHERE session_id = ? "
            "ORDER BY id DESC LIMIT ?",
            (session_id, limit),
        )
        rows = [dict(row) for row in cursor.fetchall()]
        conn.close()
        rows.reverse()
        return rows

    def add_analytics_event(self, session_id: str, event_type: str, event_data: dict):
        conn = self.get_connection()
        conn.execute(
            "INSERT INTO chat_analytics (session_id, event_type, event_data, created_at) "
            "VALUES (?, ?, ?, ?)",
            (session_id, event_type, json.dumps(event_data, ensure_ascii=False), _now()),
        )
        conn.commit()
        conn.close()
