"""
个人主页 AI 助手 后端服务
基于 Flask 提供 RESTful API：检索个人知识库 + 调用大模型回答访客关于站点主人的问题
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from config import Settings, load_settings
from database import KnowledgeStore
from llm import open_llm_client
from logging_config import setup_logging
from pipeline import build_pipeline
from recorder import ConversationRecorder

logger = logging.getLogger(__name__)

EXTENSION_KEY = "portfolio_chat"

# 历史记录接口最多返回的消息条数
HISTORY_LIMIT = 50


@dataclass
class ChatServices:
    """进程级依赖：配置、存储、对话记录器，以及按请求构建流水线的工厂"""
    settings: Settings
    store: KnowledgeStore
    recorder: ConversationRecorder
    pipeline_factory: Callable


def _services() -> ChatServices:
    return current_app.extensions[EXTENSION_KEY]


def error_response(message, status=500, details=None):
    body = {"error": message}
    if details:
        body["details"] = details
    return jsonify(body), status


def _details(e: Exception):
    """只有 DEBUG 模式才把异常信息返回给客户端"""
    return str(e) if _services().settings.debug else None


api = Blueprint("api", __name__, url_prefix="/api")


# ============================================================
#  健康检查 / 知识库
# ============================================================

@api.route("/health", methods=["GET"])
def health():
    return jsonify({
        "status": "ok",
        "message": "Portfolio AI assistant online",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })


@api.route("/knowledge", methods=["GET"])
def knowledge():
    """所有启用的知识条目（诊断 / 管理用）"""
    try:
        entries = _services().store.list_active_entries()
    except Exception as e:
        logger.exception("读取知识库失败")
        return error_response("Failed to fetch knowledge base", 500, _details(e))
    return jsonify([entry.to_dict() for entry in entries])


# ============================================================
#  对话 API
# ============================================================

@api.route("/chat", methods=["POST"])
async def chat():
    """
    发送消息并获取回复
    请求体：{message, sessionId, language?: auto|en|zh, forceLanguage?}
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    message = data.get("message")

    if not isinstance(message, str) or not message.strip():
        return error_response("Message is required", 400)

    services = _services()
    try:
        async with services.pipeline_factory() as pipeline:
            result = await pipeline.handle(
                message.strip(),
                session_id=data.get("sessionId"),
                language=data.get("language", "auto"),
                force_language=data.get("forceLanguage"),
            )
    except Exception as e:
        logger.exception("处理聊天请求失败")
        return error_response("Failed to process chat request", 500, _details(e))

    return jsonify(result.to_dict())


@api.route("/conversations", methods=["GET"])
def conversations():
    """获取某个会话最近的消息（供聊天窗口恢复历史）"""
    session_id = (request.args.get("sessionId") or "").strip()
    if not session_id:
        return error_response("Session ID required", 400)
    try:
        messages = _services().store.get_recent_messages(session_id, HISTORY_LIMIT)
    except Exception as e:
        logger.exception("读取会话 %s 历史失败", session_id)
        return error_response("Failed to fetch conversations", 500, _details(e))
    return jsonify({"conversations": messages})


# ============================================================
#  向量生成
# ============================================================

@api.route("/embeddings/generate", methods=["POST"])
async def generate_embeddings():
    """为所有缺少向量的知识条目生成向量"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    if data.get("action", "generate_all") != "generate_all":
        return error_response("Invalid action", 400)

    services = _services()
    try:
        async with services.pipeline_factory() as pipeline:
            generated = await pipeline.retriever.backfill_embeddings()
        remaining = len(await asyncio.to_thread(services.store.entries_missing_embeddings))
    except Exception as e:
        logger.exception("批量生成向量失败")
        return error_response("Failed to generate embeddings", 500, _details(e))

    if remaining:
        message = f"Generated {generated} embeddings, {remaining} still missing"
    else:
        message = f"All embeddings generated successfully ({generated} new)"
    return jsonify({"success": remaining == 0, "message": message, "generated": generated})


# ============================================================
#  应用工厂
# ============================================================

def create_app(settings=None, store=None, recorder=None, pipeline_factory=None) -> Flask:
    settings = settings or load_settings()
    if store is None:
        store = KnowledgeStore(settings.database_path)
    store.init_db()
    recorder = recorder or ConversationRecorder(store)

    if pipeline_factory is None:
        @asynccontextmanager
        async def pipeline_factory():
            # 每个请求使用独立的模型客户端，请求结束即关闭
            async with open_llm_client(settings) as client:
                yield build_pipeline(settings, store, recorder, client)

    app = Flask(__name__)
    CORS(app)  # 允许前端跨域请求
    app.extensions[EXTENSION_KEY] = ChatServices(settings, store, recorder, pipeline_factory)
    app.register_blueprint(api)

    @app.errorhandler(Exception)
    def handle_exception(e):
        if isinstance(e, HTTPException):
            return error_response(e.name, e.code, e.description)
        logger.exception("未处理的异常")
        return error_response("Internal server error", 500, str(e) if settings.debug else None)

    if not settings.llm_enabled:
        logger.warning("未配置 LLM_API_KEY：仅使用关键词检索与兜底回复")
    return app


def main():
    settings = load_settings()
    setup_logging(settings.log_level)
    logger.info("个人主页 AI 助手启动中，API 地址: http://localhost:%d/api", settings.port)
    create_app(settings).run(debug=settings.debug, port=settings.port, host="0.0.0.0")


if __name__ == "__main__":
    main()
