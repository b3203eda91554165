"""
笔记相关API端点
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Path, status
from fastapi.responses import JSONResponse

from jot.config import settings
from jot.core.auth import get_current_user_id
from jot.core.exceptions import ValidationException
from jot.core.logging import api_logger
from jot.core.storage import StorageBackend
from jot.schemas.note import (
    CommitAudioRequest,
    CommitTextRequest,
    NoteCreate,
    NoteDetailResponse,
    NoteResponse,
    NoteUpdate,
    PresignAudioRequest,
    PresignResponse,
    PresignTextRequest
)
from jot.services.note import NoteService
from jot.services.pipeline import PipelineOrchestrator
from jot.utils.audio_utils import guess_text_mime_from_path
from jot.utils.file_utils import generate_storage_key, strip_bucket_prefix
from jot.api.v1 import dependencies as deps

router = APIRouter()

NON_NULL_FIELDS = ("title", "editor_json", "tags")


@router.post("", summary="创建笔记", status_code=status.HTTP_201_CREATED, response_model=NoteResponse)
async def create_note(
    request: NoteCreate,
    user_id: str = Depends(get_current_user_id),
    service: NoteService = Depends(deps.get_note_service)
):
    """
    创建新笔记

    - **title**: 标题
    - **content_text**: 初始文本（可选，生成单段落文档）
    - **tags**: 标签，最多10个
    """
    return await service.create_note(
        user_id=user_id,
        title=request.title,
        content_text=request.content_text,
        tags=request.tags
    )


@router.get("/{note_id}", summary="获取笔记详情", response_model=NoteDetailResponse)
async def get_note(
    note_id: str = Path(..., description="笔记ID"),
    user_id: str = Depends(get_current_user_id),
    service: NoteService = Depends(deps.get_note_service)
):
    """获取笔记及其全部音频（含转录）和文本输入"""
    return await service.get_note(user_id, note_id, with_inputs=True)


@router.patch("/{note_id}", summary="更新笔记", response_model=NoteResponse)
async def update_note(
    request: NoteUpdate,
    note_id: str = Path(..., description="笔记ID"),
    user_id: str = Depends(get_current_user_id),
    service: NoteService = Depends(deps.get_note_service)
):
    """
    更新笔记

    - **title**: 标题
    - **content_text**: 文本内容
    - **editor_json**: 富文本文档
    - **tags**: 标签
    """
    values = request.model_dump(exclude_unset=True)
    if not values:
        raise ValidationException("No fields to update")

    # 只有 content_text 可以清空
    null_fields = sorted(name for name in NON_NULL_FIELDS if name in values and values[name] is None)
    if null_fields:
        raise ValidationException(f"Fields cannot be null: {', '.join(null_fields)}")

    if request.editor_json is not None:
        values["editor_json"] = request.editor_json.model_dump()

    return await service.update_note(user_id, note_id, values)


@router.post("/{note_id}/audio", summary="获取音频上传URL", response_model=PresignResponse)
async def presign_audio(
    request: PresignAudioRequest,
    note_id: str = Path(..., description="笔记ID"),
    user_id: str = Depends(get_current_user_id),
    _: Dict[str, Any] = Depends(deps.rate_limit("presign")),
    service: NoteService = Depends(deps.get_note_service),
    storage: StorageBackend = Depends(deps.get_storage)
):
    """为笔记的新音频生成限时上传URL"""
    await service.get_note(user_id, note_id)

    storage_key = generate_storage_key(request.filename)
    upload_url = await storage.get_upload_url(
        settings.audio_bucket, storage_key, settings.upload_url_expires
    )
    return PresignResponse(uploadUrl=upload_url, storageKey=storage_key)


@router.post("/{note_id}/audio/commit", summary="提交音频并处理")
async def commit_audio(
    request: CommitAudioRequest,
    note_id: str = Path(..., description="笔记ID"),
    user_id: str = Depends(get_current_user_id),
    _: Dict[str, Any] = Depends(deps.rate_limit("commit")),
    service: NoteService = Depends(deps.get_note_service),
    pipeline: PipelineOrchestrator = Depends(deps.get_pipeline)
):
    """
    记录已上传的音频并立即转录、合并、结构化

    较长的音频同样同步处理，只是以202和 processing=queued 标记返回。
    """
    storage_key = strip_bucket_prefix(request.storage_key, settings.audio_bucket)
    audio_file = await service.add_audio_file(
        user_id,
        note_id,
        storage_path=storage_key,
        mime_type=request.mime,
        duration_s=request.duration_s
    )

    await pipeline.run_audio_pipeline(user_id, note_id, audio_file.id)

    if request.duration_s is not None and request.duration_s > settings.queued_duration_threshold:
        api_logger.info(f"长音频 {audio_file.id} ({request.duration_s}s) 标记为 queued")
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content={"audioFileId": audio_file.id, "noteId": note_id, "processing": "queued"}
        )

    return {"audioFileId": audio_file.id, "noteId": note_id, "transcribed": True}


@router.post("/{note_id}/text", summary="获取文本上传URL", response_model=PresignResponse)
async def presign_text(
    request: PresignTextRequest,
    note_id: str = Path(..., description="笔记ID"),
    user_id: str = Depends(get_current_user_id),
    _: Dict[str, Any] = Depends(deps.rate_limit("presign")),
    service: NoteService = Depends(deps.get_note_service),
    storage: StorageBackend = Depends(deps.get_storage)
):
    """为笔记的新文本输入生成限时上传URL"""
    await service.get_note(user_id, note_id)

    storage_key = generate_storage_key(request.filename)
    upload_url = await storage.get_upload_url(
        settings.notes_bucket, storage_key, settings.upload_url_expires
    )
    return PresignResponse(uploadUrl=upload_url, storageKey=storage_key)


@router.post("/{note_id}/text/commit", summary="提交文本并处理")
async def commit_text(
    request: CommitTextRequest,
    note_id: str = Path(..., description="笔记ID"),
    user_id: str = Depends(get_current_user_id),
    _: Dict[str, Any] = Depends(deps.rate_limit("commit")),
    service: NoteService = Depends(deps.get_note_service),
    pipeline: PipelineOrchestrator = Depends(deps.get_pipeline)
) -> Dict[str, Any]:
    """记录已上传的文本并合并进笔记，未声明类型时按扩展名推断"""
    storage_key = strip_bucket_prefix(request.storage_key, settings.notes_bucket)
    text_input = await service.add_text_input(
        user_id,
        note_id,
        storage_path=storage_key,
        mime_type=request.mime or guess_text_mime_from_path(storage_key)
    )

    await pipeline.run_text_pipeline(user_id, note_id, text_input.id)

    return {"textInputId": text_input.id, "noteId": note_id}
