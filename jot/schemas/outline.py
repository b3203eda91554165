"""
大纲相关的Pydantic模式
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

OUTLINE_TAGS = ("work", "creative", "health", "study", "life")

OutlineTag = Literal["work", "creative", "health", "study", "life"]
OutlineLanguage = Literal["en", "zh", "mixed"]

FALLBACK_TITLE = "Untitled Note"


class NextStep(BaseModel):
    """待办事项"""
    text: str = Field(..., description="事项内容")
    due: Optional[str] = Field(None, description="截止日期")


class Outline(BaseModel):
    """结构化大纲，可随时重新生成，不覆盖用户编辑"""
    title: str = Field(..., description="标题")
    highlights: List[str] = Field(..., description="要点")
    insights: List[str] = Field(..., description="洞察")
    open_questions: List[str] = Field(..., description="待解决问题")
    next_steps: List[NextStep] = Field(..., description="下一步")
    tags: List[OutlineTag] = Field(..., description="标签，取自固定词表")
    lang: OutlineLanguage = Field(..., description="检测到的语言")

    @classmethod
    def fallback(cls) -> "Outline":
        """结构化失败时使用的最小大纲"""
        return cls(
            title=FALLBACK_TITLE,
            highlights=[],
            insights=[],
            open_questions=[],
            next_steps=[],
            tags=[],
            lang="en"
        )
