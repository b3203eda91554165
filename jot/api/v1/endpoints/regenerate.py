"""
大纲重新生成API端点
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Path

from jot.core.auth import get_current_user_id
from jot.core.exceptions import ValidationException
from jot.services.note import NoteService
from jot.services.structuring import ContentStructurer
from jot.api.v1 import dependencies as deps

router = APIRouter()


@router.post("/{note_id}/regenerate", summary="重新生成大纲建议")
async def regenerate_note(
    note_id: str = Path(..., description="笔记ID"),
    user_id: str = Depends(get_current_user_id),
    _: Dict[str, Any] = Depends(deps.rate_limit("regenerate")),
    service: NoteService = Depends(deps.get_note_service),
    structurer: ContentStructurer = Depends(deps.get_structurer)
) -> Dict[str, Any]:
    """基于笔记当前文本重新生成大纲，只返回建议，不修改笔记"""
    note = await service.get_note(user_id, note_id)
    if not note.content_text or not note.content_text.strip():
        raise ValidationException("Note has no content to regenerate")

    outline = await structurer.regenerate(note.content_text)

    return {
        "id": note.id,
        "current": {
            "title": note.title,
            "outline_json": note.outline_json,
            "editor_json": note.editor_json
        },
        "suggestions": {
            "title": outline.title,
            "outline_json": outline.model_dump()
        }
    }
