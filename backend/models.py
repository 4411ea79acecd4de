"""
数据模型 —— 知识条目、检索结果、知识类别及其关联数据（中英文关键词、展示短语）
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple


class Language(str, Enum):
    ZH = "zh"
    EN = "en"


class Category(str, Enum):
    PERSONAL = "personal"
    EDUCATION = "education"
    EXPERIENCE = "experience"
    PROJECTS = "projects"
    SKILLS = "skills"
    AWARDS = "awards"
    CONTACT = "contact"
    LANGUAGES = "languages"
    INTERESTS = "interests"
    CURRENT_STATUS = "current_status"
    CAREER = "career"


@dataclass(frozen=True)
class CategoryProfile:
    """类别关联数据：检索用关键词 + 兜底回复时的类别短语（{name} 为主人名字）"""
    en_keywords: Tuple[str, ...]
    zh_keywords: Tuple[str, ...]
    en_phrase: str
    zh_phrase: str


# ============================================================
#  类别关键词表 —— 每个 Category 必须有一项（见 tests/test_models.py）
# ============================================================

CATEGORY_PROFILES = {
    Category.PERSONAL: CategoryProfile(
        en_keywords=("name", "who", "about", "introduction", "background", "person"),
        zh_keywords=("叫", "名字", "是谁", "介绍", "背景", "个人", "人", "李一鸣", "一鸣"),
        en_phrase="About {name}",
        zh_phrase="关于{name}",
    ),
    Category.EDUCATION: CategoryProfile(
        en_keywords=("education", "university", "degree", "study", "academic", "school", "master",
                     "eit", "digital", "bachelor", "undergraduate"),
        zh_keywords=("教育", "大学", "学位", "学习", "学校", "硕士", "学历", "专业", "本科", "毕业",
                     "毕业于", "哪里", "哪个大学", "什么大学", "学士"),
        en_phrase="About {name}'s educational background",
        zh_phrase="关于{name}的教育背景",
    ),
    Category.EXPERIENCE: CategoryProfile(
        en_keywords=("experience", "work", "job", "career", "professional", "employment", "position"),
        zh_keywords=("经验", "工作", "职业", "就业", "实习", "经历", "岗位"),
        en_phrase="Regarding {name}'s professional experience",
        zh_phrase="关于{name}的专业经验",
    ),
    Category.PROJECTS: CategoryProfile(
        en_keywords=("project", "built", "developed", "created", "designed", "implemented",
                     "portfolio", "work"),
        zh_keywords=("项目", "开发", "设计", "构建", "作品", "做过", "开发过"),
        en_phrase="About {name}'s projects",
        zh_phrase="关于{name}的项目",
    ),
    Category.SKILLS: CategoryProfile(
        en_keywords=("skill", "technology", "programming", "language", "framework", "tool",
                     "expertise", "c++", "python"),
        zh_keywords=("技能", "技术", "编程", "程序", "框架", "工具", "会", "掌握"),
        en_phrase="About {name}'s technical skills",
        zh_phrase="关于{name}的技术技能",
    ),
    Category.AWARDS: CategoryProfile(
        en_keywords=("award", "scholarship", "achievement", "recognition", "honor", "prize",
                     "certificate"),
        zh_keywords=("奖学金", "奖项", "荣誉", "获奖", "奖励", "成就", "拿过", "得过", "奖"),
        en_phrase="Regarding {name}'s awards and achievements",
        zh_phrase="关于{name}的奖项和奖学金",
    ),
    Category.CONTACT: CategoryProfile(
        en_keywords=("contact", "email", "phone", "reach", "connect", "location", "address", "hire"),
        zh_keywords=("联系", "邮箱", "电话", "地址", "联系方式", "招聘"),
        en_phrase="Contacting {name}",
        zh_phrase="联系{name}",
    ),
    Category.LANGUAGES: CategoryProfile(
        en_keywords=("language", "english", "chinese", "speak", "fluent", "proficiency"),
        zh_keywords=("语言", "英语", "中文", "说", "流利", "会说"),
        en_phrase="About the languages {name} speaks",
        zh_phrase="关于{name}的语言能力",
    ),
    Category.INTERESTS: CategoryProfile(
        en_keywords=("hobby", "interest", "personal", "free", "time", "like", "enjoy"),
        zh_keywords=("爱好", "兴趣", "喜欢", "业余", "空闲", "个人"),
        en_phrase="About {name}'s interests",
        zh_phrase="关于{name}的兴趣爱好",
    ),
    Category.CURRENT_STATUS: CategoryProfile(
        en_keywords=("looking", "seeking", "search", "want", "need", "thesis", "job", "work",
                     "career", "employment", "opportunity"),
        zh_keywords=("找", "寻找", "找工作", "求职", "论文", "毕业论文", "工作", "职业", "机会", "就业"),
        en_phrase="About what {name} is currently doing",
        zh_phrase="关于{name}的近况",
    ),
    Category.CAREER: CategoryProfile(
        en_keywords=("career", "interested", "passion", "role", "position", "field", "industry"),
        zh_keywords=("职业", "兴趣", "热情", "角色", "职位", "领域", "行业", "感兴趣"),
        en_phrase="About {name}'s career interests",
        zh_phrase="关于{name}的职业方向",
    ),
}


# ============================================================
#  知识库条目 / 向量缓存
# ============================================================

@dataclass(frozen=True)
class KnowledgeEntry:
    id: int
    category: Category
    title: str
    content: str
    keywords: Tuple[str, ...] = ()
    priority: int = 0
    is_active: bool = True

    @classmethod
    def from_row(cls, row) -> "KnowledgeEntry":
        """从 sqlite3.Row 构建；keywords 列为逗号分隔字符串"""
        raw_keywords = row["keywords"] or ""
        return cls(
            id=row["id"],
            category=Category(row["category"]),
            title=row["title"],
            content=row["content"],
            keywords=tuple(k.strip() for k in raw_keywords.split(",") if k.strip()),
            priority=row["priority"] or 0,
            is_active=bool(row["is_active"]),
        )

    @property
    def embedding_text(self) -> str:
        return f"{self.title}: {self.content}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category.value,
            "title": self.title,
            "content": self.content,
            "keywords": list(self.keywords),
            "priority": self.priority,
        }


@dataclass(frozen=True)
class CachedEmbedding:
    text_hash: str
    vector: List[float]
    created_at: datetime
    text_snippet: str = ""


# ============================================================
#  检索结果
# ============================================================

@dataclass
class Scores:
    keyword: Optional[float] = None
    vector: Optional[float] = None
    combined: Optional[float] = None


@dataclass
class SearchResult:
    """知识条目 + 各路打分。去重以 entry.id 为准"""
    entry: KnowledgeEntry
    scores: Scores = field(default_factory=Scores)
    source: str = "knowledge_base"

    @property
    def id(self) -> int:
        return self.entry.id

    @property
    def score(self) -> float:
        """融合分优先；只走了单路检索时取该路得分"""
        if self.scores.combined is not None:
            return self.scores.combined
        if self.scores.keyword is not None:
            return self.scores.keyword
        return self.scores.vector or 0.0

    def to_source(self) -> dict:
        return {
            "category": self.entry.category.value,
            "title": self.entry.title,
            "confidence": round(self.score * 100),
            "source": self.source,
        }
