"""
笔记搜索API端点
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from jot.core.auth import get_current_user_id
from jot.schemas.note import NoteSearchResult
from jot.services.note import NoteService
from jot.api.v1 import dependencies as deps

router = APIRouter()


@router.get("", summary="搜索笔记")
async def search_notes(
    q: Optional[str] = Query(None, description="标题关键字"),
    tag: Optional[str] = Query(None, description="标签"),
    limit: int = Query(50, ge=1, le=100, description="返回数量"),
    user_id: str = Depends(get_current_user_id),
    _: Dict[str, Any] = Depends(deps.rate_limit("search")),
    service: NoteService = Depends(deps.get_note_service)
) -> Dict[str, Any]:
    """按标题（不区分大小写）和标签搜索当前用户的笔记，最新的在前"""
    notes = await service.search_notes(user_id, query=q, tag=tag, limit=limit)
    return {
        "notes": [NoteSearchResult.model_validate(note).model_dump(mode="json") for note in notes]
    }
