"""
富文本文档构建与校验

所有函数均为纯函数，返回可直接存入 editor_json 的字典。
"""

import re
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from jot.schemas.editor import DocNode
from jot.schemas.outline import Outline

SECTION_ORDER = ("Highlights", "Insights", "Open Questions", "Next Steps")
OPEN_QUESTIONS = "Open Questions"
PROCESSING_FAILED_TITLE = "Processing Failed"

_BLANK_LINES = re.compile(r"\n\s*\n")


def empty_document() -> Dict[str, Any]:
    return {"type": "doc", "content": []}


def _text(text: Optional[str]) -> List[Dict[str, Any]]:
    # 空文本节点在编辑器中非法
    if not text:
        return []
    return [{"type": "text", "text": text}]


def heading(text: str, level: int) -> Dict[str, Any]:
    return {"type": "heading", "attrs": {"level": level}, "content": _text(text)}


def paragraph(text: Optional[str]) -> Dict[str, Any]:
    return {"type": "paragraph", "content": _text(text)}


def bullet_list(items: List[str]) -> Dict[str, Any]:
    return {
        "type": "bulletList",
        "content": [
            {"type": "listItem", "content": [paragraph(item)]}
            for item in items
        ]
    }


def task_list(items: List[str]) -> Dict[str, Any]:
    return {
        "type": "taskList",
        "content": [
            {"type": "taskItem", "attrs": {"checked": False}, "content": [paragraph(item)]}
            for item in items
        ]
    }


def ensure_question(text: str) -> str:
    """保证问题以问号结尾"""
    stripped = text.rstrip()
    if stripped.endswith("?"):
        return stripped
    return f"{stripped}?"


def split_paragraphs(text: Optional[str]) -> List[str]:
    """按空行切分文本，丢弃空段落"""
    if not text:
        return []
    return [part.strip() for part in _BLANK_LINES.split(text) if part.strip()]


def single_paragraph_document(text: Optional[str]) -> Dict[str, Any]:
    """新建笔记时的初始文档：整段文本放入一个段落"""
    if not text:
        return empty_document()
    return {"type": "doc", "content": [paragraph(text)]}


def paragraphs_document(text: Optional[str]) -> Dict[str, Any]:
    """文本输入的文档：每个空行分隔的片段对应一个段落"""
    return {"type": "doc", "content": [paragraph(part) for part in split_paragraphs(text)]}


def processing_failed_document(raw_text: str) -> Dict[str, Any]:
    """处理失败时的降级文档"""
    return {
        "type": "doc",
        "content": [heading(PROCESSING_FAILED_TITLE, 1), paragraph(raw_text)]
    }


def render_outline_document(outline: Outline) -> Dict[str, Any]:
    """
    把大纲确定性地渲染为文档

    一级标题为大纲标题，之后按固定顺序输出各个二级章节，空章节省略。
    """
    content: List[Dict[str, Any]] = [heading(outline.title, 1)]

    if outline.highlights:
        content.append(heading("Highlights", 2))
        content.append(bullet_list(outline.highlights))

    if outline.insights:
        content.append(heading("Insights", 2))
        content.append(bullet_list(outline.insights))

    if outline.open_questions:
        content.append(heading(OPEN_QUESTIONS, 2))
        content.append(bullet_list([ensure_question(q) for q in outline.open_questions]))

    if outline.next_steps:
        content.append(heading("Next Steps", 2))
        content.append(task_list([step.text for step in outline.next_steps]))

    return {"type": "doc", "content": content}


def _heading_text(node: Dict[str, Any]) -> str:
    return "".join(child.get("text", "") for child in node.get("content", [])).strip()


def _coerce_questions(list_node: Dict[str, Any]):
    for item in list_node.get("content", []):
        paragraphs = [child for child in item.get("content", []) if child["type"] == "paragraph"]
        if not paragraphs or not paragraphs[-1]["content"]:
            continue
        last_text = paragraphs[-1]["content"][-1]
        last_text["text"] = ensure_question(last_text["text"])


def _has_items(block: Dict[str, Any]) -> bool:
    return block["type"] in ("bulletList", "taskList") and bool(block["content"])


def validate_rendered_document(data: Any) -> Optional[Dict[str, Any]]:
    """
    校验模型生成的文档

    要求：只包含封闭词表中的节点，第一个节点是一级标题，
    其余一级标题不存在，二级标题按固定章节顺序出现（可省略），
    每个出现的章节至少有一个非空列表，待解决问题章节下只能是项目符号列表。
    通过时返回规范化后的文档（待解决问题补全问号），否则返回None。
    """
    try:
        doc = DocNode.model_validate(data).model_dump()
    except ValidationError:
        return None

    blocks = doc["content"]
    if not blocks or blocks[0]["type"] != "heading" or blocks[0]["attrs"]["level"] != 1:
        return None

    position = 0
    current_section = None
    section_has_items = True
    for block in blocks[1:]:
        if block["type"] == "heading" and block["attrs"]["level"] <= 2:
            if block["attrs"]["level"] == 1 or not section_has_items:
                return None
            title = _heading_text(block).lower()
            remaining = [s.lower() for s in SECTION_ORDER[position:]]
            if title not in remaining:
                return None
            position += remaining.index(title) + 1
            current_section = SECTION_ORDER[position - 1]
            section_has_items = False
            continue

        if current_section == OPEN_QUESTIONS:
            if block["type"] != "bulletList":
                return None
            _coerce_questions(block)
        section_has_items = section_has_items or _has_items(block)

    if not section_has_items:
        return None
    return doc
