"""
文件处理工具函数
"""

import os
import re
import uuid
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiofiles

from jot.core.logging import audio_logger

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def sanitize_filename(filename: str) -> str:
    """替换文件名中的不安全字符"""
    return _UNSAFE_CHARS.sub("_", filename)


def generate_storage_key(original_filename: str) -> str:
    """
    生成唯一存储键

    Args:
        original_filename: 客户端提供的文件名

    Returns:
        str: 形如 {uuid}-{清理后的文件名} 的键
    """
    return f"{uuid.uuid4()}-{sanitize_filename(original_filename)}"


def strip_bucket_prefix(storage_key: str, bucket: str) -> str:
    """去掉客户端可能带上的存储桶前缀，如 audio/xxx -> xxx"""
    key = storage_key.lstrip("/")
    prefix = f"{bucket}/"
    if key.startswith(prefix):
        return key[len(prefix):]
    return key


@asynccontextmanager
async def staged_file(content: bytes, filename: str) -> AsyncIterator[Path]:
    """
    把字节写入临时目录中的命名文件，退出时无论成功与否都会清理

    Args:
        content: 文件内容
        filename: 临时文件名（扩展名会被下游服务用来识别格式）

    Yields:
        Path: 临时文件路径
    """
    temp_dir = tempfile.mkdtemp(prefix="jot-")
    file_path = Path(temp_dir) / filename

    try:
        async with aiofiles.open(file_path, "wb") as f:
            await f.write(content)
        yield file_path
    finally:
        try:
            if file_path.exists():
                os.remove(file_path)
            os.rmdir(temp_dir)
        except OSError as e:
            audio_logger.warning(f"临时文件清理失败: {file_path}: {e}")
