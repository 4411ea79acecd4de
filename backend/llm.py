"""
大模型调用封装 —— OpenAI 兼容接口的对话补全，带超时与统一异常
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from openai import AsyncOpenAI, OpenAIError

from config import Settings

logger = logging.getLogger(__name__)


class LanguageModelError(Exception):
    """模型不可用、超时、返回异常或空内容"""


@asynccontextmanager
async def open_llm_client(settings: Settings) -> AsyncIterator[Optional[AsyncOpenAI]]:
    """按请求创建 AsyncOpenAI 客户端，用完关闭；未配置 API Key 时给出 None"""
    if not settings.llm_enabled:
        yield None
        return
    client = AsyncOpenAI(
        api_key=settings.api_key,
        base_url=settings.base_url,
        timeout=settings.request_timeout,
        max_retries=0,
    )
    try:
        yield client
    finally:
        await client.close()


class LanguageModel:
    """单轮文本生成：prompt 进，文本出"""

    def __init__(self, client: Optional[AsyncOpenAI], model: str, timeout: float = 30.0):
        self.client = client
        self.model = model
        self.timeout = timeout

    @property
    def available(self) -> bool:
        return self.client is not None

    async def complete(
        self,
        prompt: str,
        *,
        temperature: float,
        top_p: float,
        max_tokens: int,
        top_k: Optional[int] = None,
    ) -> str:
        if self.client is None:
            raise LanguageModelError("language model is not configured")

        kwargs = {}
        if top_k is not None:
            # top_k 不在 OpenAI 标准参数里，兼容接口（DeepSeek / vLLM 等）通过 extra_body 接收
            kwargs["extra_body"] = {"top_k": top_k}

        try:
            resp = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=[{"role": "user", "content": prompt}],
                    temperature=temperature,
                    top_p=top_p,
                    max_tokens=max_tokens,
                    **kwargs,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise LanguageModelError(f"language model timed out after {self.timeout}s") from e
        except OpenAIError as e:
            raise LanguageModelError(f"language model request failed: {e}") from e

        choice = resp.choices[0] if resp.choices else None
        text = ((choice.message.content if choice else None) or "").strip()
        if not text:
            raise LanguageModelError("language model returned no text")
        return text
