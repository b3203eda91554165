"""
旧版单次采集API端点
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from jot.config import settings
from jot.core.auth import get_current_user_id
from jot.core.logging import api_logger
from jot.core.storage import StorageBackend
from jot.schemas.note import CommitCaptureRequest, PresignCaptureRequest, PresignResponse
from jot.services.note import NoteService
from jot.services.pipeline import PipelineOrchestrator
from jot.utils.audio_utils import (
    guess_audio_mime_from_path,
    guess_text_mime_from_path,
    is_text_mime,
    is_text_path
)
from jot.utils.file_utils import generate_storage_key, strip_bucket_prefix
from jot.api.v1 import dependencies as deps

router = APIRouter()


@router.post("/presign", summary="获取采集上传URL", response_model=PresignResponse)
async def presign_capture(
    request: PresignCaptureRequest,
    user_id: str = Depends(get_current_user_id),
    _: Dict[str, Any] = Depends(deps.rate_limit("presign")),
    storage: StorageBackend = Depends(deps.get_storage)
):
    """文本类型上传到 notes 存储桶，其余上传到 audio 存储桶"""
    bucket = settings.notes_bucket if is_text_mime(request.mime) else settings.audio_bucket
    storage_key = generate_storage_key(request.filename)
    upload_url = await storage.get_upload_url(bucket, storage_key, settings.upload_url_expires)
    return PresignResponse(uploadUrl=upload_url, storageKey=storage_key)


@router.post("/commit", summary="提交采集并生成新笔记")
async def commit_capture(
    request: CommitCaptureRequest,
    user_id: str = Depends(get_current_user_id),
    _: Dict[str, Any] = Depends(deps.rate_limit("commit")),
    service: NoteService = Depends(deps.get_note_service),
    pipeline: PipelineOrchestrator = Depends(deps.get_pipeline)
):
    """
    每次采集生成一篇新笔记，处理失败时尽量生成 "Processing Failed" 笔记

    未声明类型时按存储键扩展名区分文本和音频。
    较长的音频同样同步处理，只是以202和 processing=queued 标记返回。
    """
    is_text = is_text_mime(request.mime) if request.mime else is_text_path(request.storage_key)
    if is_text:
        storage_key = strip_bucket_prefix(request.storage_key, settings.notes_bucket)
        capture = await service.create_capture(
            user_id,
            text_path=storage_key,
            mime_type=request.mime or guess_text_mime_from_path(storage_key)
        )
    else:
        storage_key = strip_bucket_prefix(request.storage_key, settings.audio_bucket)
        capture = await service.create_capture(
            user_id,
            audio_path=storage_key,
            mime_type=request.mime or guess_audio_mime_from_path(storage_key),
            duration_s=request.duration_s
        )

    result = await pipeline.process_capture(user_id, capture.id)

    duration_s = request.duration_s
    if not is_text and duration_s is not None and duration_s > settings.queued_duration_threshold:
        api_logger.info(f"长采集 {capture.id} ({duration_s}s) 标记为 queued")
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content={"captureId": capture.id, "noteId": result.note_id, "processing": "queued"}
        )

    return {"captureId": capture.id, "noteId": result.note_id}
