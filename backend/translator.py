"""
查询翻译 —— 中文问题先译成英文再检索（知识库内容以英文为主）
翻译只是提高召回的手段：任何失败都原样返回输入
"""

import logging
from typing import Optional

from llm import LanguageModel, LanguageModelError

logger = logging.getLogger(__name__)

TRANSLATION_PROMPT = """You are a query translator. Translate the following Chinese question about {owner} to English, keeping the same meaning and intent. Only return the English translation, nothing else.

Chinese question: {question}

English translation:"""


class QueryTranslator:

    def __init__(
        self,
        llm: LanguageModel,
        owner_name: str,
        temperature: float = 0.3,
        top_k: Optional[int] = 20,
        top_p: float = 0.8,
        max_tokens: int = 100,
    ):
        self.llm = llm
        self.owner_name = owner_name
        self.temperature = temperature
        self.top_k = top_k
        self.top_p = top_p
        self.max_tokens = max_tokens

    async def translate_to_english(self, text: str) -> str:
        prompt = TRANSLATION_PROMPT.format(owner=self.owner_name, question=text)
        try:
            translated = await self.llm.complete(
                prompt,
                temperature=self.temperature,
                top_k=self.top_k,
                top_p=self.top_p,
                max_tokens=self.max_tokens,
            )
        except LanguageModelError as e:
            logger.warning("查询翻译失败，使用原文检索: %s", e)
            return text
        except Exception:
            logger.exception("查询翻译出现未预期错误，使用原文检索")
            return text
        return translated.strip() or text
