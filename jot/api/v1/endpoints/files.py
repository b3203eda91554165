"""
本地存储上传API端点

本地存储后端的上传URL指向这里，对应S3预签名URL的PUT上传。
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Path, Request

from jot.config import settings
from jot.core.exceptions import NotFoundException, ValidationException
from jot.core.logging import api_logger
from jot.core.storage import LocalStorageBackend, StorageBackend
from jot.api.v1 import dependencies as deps

router = APIRouter()


@router.put("/{bucket}/{key:path}", summary="上传文件到本地存储")
async def upload_file(
    request: Request,
    bucket: str = Path(..., description="存储桶"),
    key: str = Path(..., description="存储键"),
    storage: StorageBackend = Depends(deps.get_storage)
) -> Dict[str, Any]:
    """写入请求体，只在本地存储后端下可用"""
    if not isinstance(storage, LocalStorageBackend):
        raise NotFoundException("Upload endpoint")
    if bucket not in (settings.audio_bucket, settings.notes_bucket):
        raise NotFoundException("Bucket")

    content = await request.body()
    if not content:
        raise ValidationException("Empty upload")

    try:
        await storage.upload(bucket, key, content, request.headers.get("content-type"))
    except ValueError as e:
        raise ValidationException(str(e))

    api_logger.info(f"本地上传: {bucket}/{key} ({len(content)} bytes)")
    return {"bucket": bucket, "storageKey": key, "size": len(content)}
