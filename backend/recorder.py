"""
对话记录 —— 每轮问答写入 conversations 与 chat_analytics
写库放在后台线程执行，不阻塞回复；写入失败只记日志
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)

ANONYMOUS_SESSION = "anonymous"


class ConversationRecorder:

    def __init__(self, store, executor: Optional[ThreadPoolExecutor] = None):
        self.store = store
        # 单线程保证同一进程内的写入顺序
        self.executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="conversation-recorder")

    def record(self, session_id: Optional[str], user_message: str, reply: str, language: str) -> Future:
        """提交写入任务后立即返回；返回的 Future 只用于测试或关闭前等待"""
        return self.executor.submit(self._write, session_id or ANONYMOUS_SESSION, user_message, reply, language)

    def _write(self, session_id: str, user_message: str, reply: str, language: str) -> bool:
        try:
            self.store.add_message(session_id, "user", user_message)
            self.store.add_message(session_id, "assistant", reply)
            self.store.add_analytics_event(session_id, "conversation", {
                "language": language,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            })
            return True
        except Exception:
            logger.exception("保存会话 %s 的对话记录失败", session_id)
            return False

    def shutdown(self, wait: bool = True):
        self.executor.shutdown(wait=wait)
