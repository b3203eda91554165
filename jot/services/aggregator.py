"""
笔记内容聚合
"""

from functools import reduce
from typing import Iterable, Optional

from jot.schemas.outline import FALLBACK_TITLE
from jot.utils.editor_doc import split_paragraphs

SEPARATOR = "\n\n"
TITLE_MAX_LENGTH = 100


class NoteAggregator:
    """按到达顺序把新提取的文本追加到笔记内容之后"""

    def merge(self, existing: Optional[str], new: Optional[str]) -> Optional[str]:
        """合并两段文本，空文本不产生分隔符"""
        if not new:
            return existing
        if not existing:
            return new
        return f"{existing}{SEPARATOR}{new}"

    def merge_all(self, parts: Iterable[Optional[str]]) -> Optional[str]:
        return reduce(self.merge, parts, None)

    def fallback_title(self, text: Optional[str]) -> str:
        """取第一个非空段落的前100个字符作为标题"""
        paragraphs = split_paragraphs(text)
        if not paragraphs:
            return FALLBACK_TITLE
        return " ".join(paragraphs[0].split())[:TITLE_MAX_LENGTH]
