"""
语言检测 —— 判断一段文本是中文还是英文
多层规则依次判断，命中即返回；无副作用，不会抛异常
"""

import re
from typing import Optional

from models import Language

# 中日韩统一表意文字、扩展 A、兼容表意文字
_CJK_PATTERN = re.compile(r"[\u4e00-\u9fff\u3400-\u4dbf\uf900-\ufaff]")

# 常见中文虚词 / 高频词 / 站点主人名字
_CHINESE_WORDS = (
    "李一鸣", "一鸣", "你好", "什么", "哪里", "工作", "论文", "找", "在", "的", "是", "了", "和",
    "有", "他", "她", "我", "你", "毕业", "学位", "技能", "项目", "经验", "教育", "大学", "专业",
    "研究", "开发", "设计", "系统", "软件", "硬件",
)

_FULLWIDTH_PUNCTUATION = ("？", "，", "。")


def _has_cjk(text: str) -> bool:
    return _CJK_PATTERN.search(text) is not None


def _has_chinese_word(text: str) -> bool:
    return any(word in text for word in _CHINESE_WORDS)


def _has_cjk_code_point(text: str) -> bool:
    # 独立于正则的逐字符扫描，应对编码异常的输入
    return any(0x4E00 <= ord(ch) <= 0x9FFF for ch in text)


def _has_fullwidth_punctuation(text: str) -> bool:
    return any(p in text for p in _FULLWIDTH_PUNCTUATION)


_RULES = (_has_cjk, _has_chinese_word, _has_cjk_code_point, _has_fullwidth_punctuation)


def detect_language(text: str) -> Language:
    """返回 Language.ZH 或 Language.EN"""
    if not text:
        return Language.EN
    for rule in _RULES:
        if rule(text):
            return Language.ZH
    return Language.EN


def parse_language(value) -> Optional[Language]:
    """解析客户端传入的语言标记（'en' / 'zh' / 'zh-CN' 等），无法识别返回 None"""
    if not isinstance(value, str):
        return None
    value = value.strip().lower()
    if value.startswith("zh"):
        return Language.ZH
    if value.startswith("en"):
        return Language.EN
    return None
