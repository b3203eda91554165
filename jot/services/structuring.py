"""
内容结构化服务
把合并后的文本整理成大纲，再把大纲渲染成富文本文档
"""

import json
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from jot.config import settings
from jot.core.exceptions import AIServiceException
from jot.core.logging import ai_logger
from jot.schemas.outline import Outline
from jot.services.ai.ai_service import get_ai_service
from jot.services.ai.base import LLMProvider
from jot.utils.editor_doc import render_outline_document, validate_rendered_document

STRUCTURE_SYSTEM_PROMPT = (
    "You convert raw transcripts into concise, factual outlines. Do not invent content. "
    "Return strict JSON with keys: {title, highlights, insights, open_questions, "
    "next_steps, tags, lang}. Keep bullets short; preserve numbers/names; no hallucinations. "
    "next_steps items are objects {text, due} where due is a date string or null. "
    "Tags must be subset of: work, creative, health, study, life. "
    "lang is one of: en, zh, mixed."
)

RENDER_SYSTEM_PROMPT = (
    "Convert outline JSON into a clean ProseMirror doc JSON with sections: "
    "H1 title; H2 Highlights (bulleted); H2 Insights (bulleted); "
    "H2 Open Questions (bulleted, each ends with '?'); "
    "H2 Next Steps (todo list checkboxes). "
    "Use only these node types: doc, heading, paragraph, bulletList, listItem, "
    "taskList, taskItem, text. Keep structure minimal; no custom styling."
)


def parse_json_object(content: Optional[str]) -> Dict[str, Any]:
    """解析模型输出的JSON对象，容忍Markdown代码块包裹"""
    if not content or not content.strip():
        raise ValueError("empty response")

    text = content.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.startswith("json"):
            text = text[len("json"):]

    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("response is not a JSON object")
    return data


class ContentStructurer:
    """
    内容结构化器

    模型调用失败或输出不合法时立即降级（不重试）：
    结构化降级为最小大纲，渲染降级为本地确定性渲染。两个操作都不会抛出异常。
    """

    def __init__(self, llm_provider: Optional[LLMProvider] = None, max_chars: Optional[int] = None):
        self._llm_provider = llm_provider
        self.max_chars = max_chars or settings.structure_max_chars

    @property
    def llm_provider(self) -> LLMProvider:
        if self._llm_provider is None:
            self._llm_provider = get_ai_service().llm_provider
        return self._llm_provider

    async def _complete_json(
        self,
        messages: List[Dict[str, str]],
        temperature: float,
        max_tokens: int
    ) -> Dict[str, Any]:
        response = await self.llm_provider.chat_completion(
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            json_mode=True
        )
        return parse_json_object(response.content)

    async def structure(self, text: Optional[str]) -> Outline:
        """
        把文本整理成大纲

        Args:
            text: 合并后的笔记文本，超过上限的部分会被截断

        Returns:
            Outline: 模型生成的大纲，失败时为最小降级大纲
        """
        if not text or not text.strip():
            return Outline.fallback()

        truncated = text[:self.max_chars]
        messages = [
            {"role": "system", "content": STRUCTURE_SYSTEM_PROMPT},
            {"role": "user", "content": f"INPUT_TRANSCRIPT:\n<<<\n{truncated}\n>>>"}
        ]

        try:
            data = await self._complete_json(messages, temperature=0.3, max_tokens=1500)
            return Outline.model_validate(data)
        except (AIServiceException, ValueError, ValidationError) as e:
            # json.JSONDecodeError 是 ValueError 的子类
            ai_logger.warning(f"结构化失败，使用降级大纲: {e}")
        except Exception as e:
            ai_logger.error(f"结构化出现意外错误，使用降级大纲: {e}")

        return Outline.fallback()

    async def render(self, outline: Outline) -> Dict[str, Any]:
        """
        把大纲渲染成富文本文档

        模型输出必须通过封闭节点类型校验并符合固定章节顺序，否则使用本地渲染。
        """
        messages = [
            {"role": "system", "content": RENDER_SYSTEM_PROMPT},
            {"role": "user", "content": json.dumps(outline.model_dump(), ensure_ascii=False)}
        ]

        try:
            data = await self._complete_json(messages, temperature=0.2, max_tokens=2000)
            document = validate_rendered_document(data)
            if document is not None:
                return document
            ai_logger.warning("渲染结果不符合文档结构，使用本地渲染")
        except (AIServiceException, ValueError) as e:
            ai_logger.warning(f"渲染失败，使用本地渲染: {e}")
        except Exception as e:
            ai_logger.error(f"渲染出现意外错误，使用本地渲染: {e}")

        return render_outline_document(outline)

    async def regenerate(self, text: Optional[str]) -> Outline:
        """重新生成大纲建议，不写入笔记"""
        return await self.structure(text)
