"""
回复生成 —— 把检索到的知识拼成提示词交给大模型作答
模型不可用 / 超时 / 返回空内容时，按三级兜底模板给出回复，保证访客永远看不到原始报错
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional, Sequence

from llm import LanguageModel, LanguageModelError
from models import CATEGORY_PROFILES, Language, SearchResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Persona:
    """站点主人：英文全名 / 英文简称 / 中文名"""
    name: str = "Yiming Li"
    short_name: str = "Yiming"
    name_zh: str = "李一鸣"


# ============================================================
#  提示词
# ============================================================

SYSTEM_PROMPT_EN = (
    "You are {name}'s AI assistant. Answer questions about {short} professionally and helpfully "
    "in English. Only use the information provided below and never invent facts about {short}."
)

SYSTEM_PROMPT_ZH = (
    "你是{name_zh}({name})的AI助手。请用中文专业、友善地回答关于{name_zh}的问题。"
    "{name_zh}的英文名是{name}。只根据下面提供的信息回答，不要编造任何信息。"
)

GUIDELINES_EN = """Response Guidelines:
1. Use the provided relevant information to answer accurately
2. Be conversational, friendly, and professional
3. If information is incomplete, suggest contacting {short} directly
4. Focus on the most relevant information based on confidence scores
5. Keep responses concise but informative"""

GUIDELINES_ZH = """回答指南：
1. 使用提供的相关信息准确回答问题
2. 保持对话式、友好和专业的语调
3. 如果信息不完整，建议直接联系{name_zh}
4. 重点关注最相关的信息（根据置信度）
5. 保持回答简洁但有用
6. 记住{name_zh}的中文名字是"{name_zh}"，英文名是"{name}\""""

INSTRUCTION_HAS_INFO = "Please provide a helpful response based on the available information above."

INSTRUCTION_NO_INFO = (
    "The question asks for specific information that is not available in the knowledge base. "
    "Please politely explain that this specific information is not available and suggest contacting "
    "{short} directly for such details. You can still mention general information about {short} if relevant."
)


# ============================================================
#  兜底回复
# ============================================================

# 年龄、感情、家庭等知识库不会收录的私人问题
_PERSONAL_PATTERN_EN = re.compile(
    r"\b(age|old|birthday|born|favou?rite|likes|hobbies|relationship|married|girlfriend|boyfriend"
    r"|family|address|phone number|personal life)\b"
)
_PERSONAL_WORDS_ZH = (
    "年龄", "多大", "几岁", "生日", "出生", "结婚", "婚姻", "恋爱", "女朋友", "男朋友", "对象",
    "家庭", "家人", "住址", "电话号码", "私生活",
)

PERSONAL_DISCLAIMER_EN = (
    "I don't have that specific information about {short}. I have details about {short}'s education, "
    "professional skills, projects, and achievements, but not personal details like this. For such "
    "specific information, I'd recommend contacting {short} directly through this website."
)
PERSONAL_DISCLAIMER_ZH = (
    "抱歉，我没有关于{name_zh}的这个具体信息。我主要了解{name_zh}的教育背景、专业技能、项目经验和获奖情况。"
    "如需了解更多个人信息，建议直接通过网站联系{name_zh}。"
)

GENERIC_REPLY_EN = (
    "Thank you for your question! I have information about {short}'s education, projects, skills, "
    "and achievements. Please feel free to contact {short} directly through this website."
)
GENERIC_REPLY_ZH = "感谢您的问题！我可以为您提供{name_zh}的教育背景、项目经验、技能和获奖情况等信息。请随时通过网站与{name_zh}联系。"


def is_personal_question(message: str) -> bool:
    lowered = message.lower()
    if _PERSONAL_PATTERN_EN.search(lowered):
        return True
    return any(word in message for word in _PERSONAL_WORDS_ZH)


def has_relevant_info(results: Optional[Sequence[SearchResult]], threshold: float = 0.3) -> bool:
    return bool(results) and any(r.score > threshold for r in results)


def fallback_response(
    message: str,
    results: Optional[Sequence[SearchResult]],
    language: Language,
    persona: Persona = Persona(),
    relevance_threshold: float = 0.3,
) -> str:
    """三级兜底：私人问题声明 → 引用最相关条目 → 通用介绍"""
    names = {"name": persona.name, "short": persona.short_name, "name_zh": persona.name_zh}
    zh = language == Language.ZH

    if is_personal_question(message) and not has_relevant_info(results, relevance_threshold):
        return (PERSONAL_DISCLAIMER_ZH if zh else PERSONAL_DISCLAIMER_EN).format(**names)

    if results:
        top = results[0]
        profile = CATEGORY_PROFILES[top.entry.category]
        if zh:
            phrase = profile.zh_phrase.format(name=persona.name_zh)
            content = top.entry.content.strip().rstrip("。.")
            return f"{phrase}：{content}。如需了解更多信息，请通过网站直接联系{persona.name_zh}。"
        phrase = profile.en_phrase.format(name=persona.short_name)
        content = top.entry.content.strip().rstrip(".")
        return (f"{phrase}: {content}. For more information, please contact "
                f"{persona.short_name} directly through this website.")

    return (GENERIC_REPLY_ZH if zh else GENERIC_REPLY_EN).format(**names)


# ============================================================
#  回复生成
# ============================================================

class ResponseGenerator:

    def __init__(
        self,
        llm: LanguageModel,
        persona: Persona = Persona(),
        temperature: float = 0.7,
        top_k: Optional[int] = 40,
        top_p: float = 0.95,
        max_tokens: int = 1024,
        relevance_threshold: float = 0.3,
        context_limit: int = 6,
    ):
        self.llm = llm
        self.persona = persona
        self.temperature = temperature
        self.top_k = top_k
        self.top_p = top_p
        self.max_tokens = max_tokens
        self.relevance_threshold = relevance_threshold
        self.context_limit = context_limit

    def build_context(self, results: Sequence[SearchResult]) -> str:
        if not results:
            return ""
        lines = [f"\n## Available Information about {self.persona.short_name}:"]
        for index, item in enumerate(results[:self.context_limit], start=1):
            lines.append(
                f"{index}. **{item.entry.category.value.upper()} - {item.entry.title}** "
                f"(Confidence: {round(item.score * 100)}%)\n   {item.entry.content}\n"
            )
        return "\n".join(lines)

    def build_prompt(
        self,
        message: str,
        results: Sequence[SearchResult],
        language: Language,
        search_query: Optional[str] = None,
    ) -> str:
        names = {"name": self.persona.name, "short": self.persona.short_name, "name_zh": self.persona.name_zh}
        if language == Language.ZH:
            system_prompt = SYSTEM_PROMPT_ZH.format(**names)
            guidelines = GUIDELINES_ZH.format(**names)
        else:
            system_prompt = SYSTEM_PROMPT_EN.format(**names)
            guidelines = GUIDELINES_EN.format(**names)

        search_context = ""
        if search_query and search_query != message:
            search_context = f'\n## Search Context: The question was processed as: "{search_query}"'

        if has_relevant_info(results, self.relevance_threshold):
            instruction = INSTRUCTION_HAS_INFO
        else:
            instruction = INSTRUCTION_NO_INFO.format(**names)

        return (
            f"{system_prompt}\n\n"
            f"{guidelines}\n\n"
            f"## User Question: {message}{search_context}\n"
            f"{self.build_context(results)}\n\n"
            f"## Instructions:\n{instruction}\n\n"
            f"Please provide a helpful response:"
        )

    async def generate(
        self,
        message: str,
        results: Sequence[SearchResult],
        language: Language,
        session_id: Optional[str] = None,
        search_query: Optional[str] = None,
    ) -> str:
        """调用模型生成回复；不会抛异常，也不会返回空字符串"""
        try:
            prompt = self.build_prompt(message, results, language, search_query)
            text = await self.llm.complete(
                prompt,
                temperature=self.temperature,
                top_k=self.top_k,
                top_p=self.top_p,
                max_tokens=self.max_tokens,
            )
            if text and text.strip():
                return text
            logger.warning("会话 %s 模型返回空内容，使用兜底回复", session_id)
        except LanguageModelError as e:
            logger.warning("会话 %s 生成回复失败，使用兜底回复: %s", session_id, e)
        except Exception:
            logger.exception("会话 %s 生成回复出现未预期错误，使用兜底回复", session_id)
        return fallback_response(message, results, language, self.persona, self.relevance_threshold)
