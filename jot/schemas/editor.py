"""
富文本文档（ProseMirror/Tiptap JSON）的封闭节点类型

只接受渲染器会产生的节点：doc、heading、paragraph、bulletList、taskList、
listItem、taskItem、text。未知节点类型会导致校验失败。
"""

from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, Field


class TextNode(BaseModel):
    type: Literal["text"] = "text"
    text: str = Field(..., min_length=1)


class HeadingAttrs(BaseModel):
    level: int = Field(..., ge=1, le=6)


class HeadingNode(BaseModel):
    type: Literal["heading"] = "heading"
    attrs: HeadingAttrs
    content: List[TextNode] = Field(default_factory=list)


class ParagraphNode(BaseModel):
    type: Literal["paragraph"] = "paragraph"
    content: List[TextNode] = Field(default_factory=list)


class ListItemNode(BaseModel):
    type: Literal["listItem"] = "listItem"
    content: List["BlockNode"] = Field(default_factory=list)


class TaskItemAttrs(BaseModel):
    checked: bool = False


class TaskItemNode(BaseModel):
    type: Literal["taskItem"] = "taskItem"
    attrs: TaskItemAttrs = Field(default_factory=TaskItemAttrs)
    content: List["BlockNode"] = Field(default_factory=list)


class BulletListNode(BaseModel):
    type: Literal["bulletList"] = "bulletList"
    content: List[ListItemNode] = Field(default_factory=list)


class TaskListNode(BaseModel):
    type: Literal["taskList"] = "taskList"
    content: List[TaskItemNode] = Field(default_factory=list)


BlockNode = Annotated[
    Union[HeadingNode, ParagraphNode, BulletListNode, TaskListNode],
    Field(discriminator="type")
]


class DocNode(BaseModel):
    type: Literal["doc"] = "doc"
    content: List[BlockNode] = Field(default_factory=list)


ListItemNode.model_rebuild()
TaskItemNode.model_rebuild()
DocNode.model_rebuild()
