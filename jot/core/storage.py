"""
文件存储系统 - 支持本地存储和S3云存储
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional
from pathlib import Path
import boto3
from botocore.exceptions import ClientError

from jot.config import settings
from loguru import logger


class StorageBackend(ABC):
    """存储后端抽象基类，按 (bucket, key) 寻址"""

    @abstractmethod
    async def upload(self, bucket: str, key: str, content: bytes, content_type: Optional[str] = None) -> str:
        """上传文件"""
        pass

    @abstractmethod
    async def download(self, bucket: str, key: str) -> bytes:
        """下载文件，不存在时抛出 FileNotFoundError"""
        pass

    @abstractmethod
    async def exists(self, bucket: str, key: str) -> bool:
        """检查文件是否存在"""
        pass

    @abstractmethod
    async def get_upload_url(self, bucket: str, key: str, expires_in: int = 3600) -> str:
        """获取限时上传URL"""
        pass


class LocalStorageBackend(StorageBackend):
    """本地文件存储后端"""

    def __init__(self, base_path: str):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_full_path(self, bucket: str, key: str) -> Path:
        """获取完整文件路径，拒绝越出存储桶目录的键"""
        bucket_root = (self.base_path / bucket).resolve()
        full_path = (bucket_root / key).resolve()
        if bucket_root not in full_path.parents:
            raise ValueError(f"Invalid storage key: {key}")
        return full_path

    async def upload(self, bucket: str, key: str, content: bytes, content_type: Optional[str] = None) -> str:
        """上传文件到本地存储"""
        full_path = self._get_full_path(bucket, key)
        full_path.parent.mkdir(parents=True, exist_ok=True)

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, full_path.write_bytes, content)

        return str(full_path)

    async def download(self, bucket: str, key: str) -> bytes:
        """从本地存储下载文件"""
        full_path = self._get_full_path(bucket, key)
        if not full_path.exists():
            raise FileNotFoundError(f"File not found: {bucket}/{key}")

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, full_path.read_bytes)

    async def exists(self, bucket: str, key: str) -> bool:
        """检查文件是否存在"""
        return self._get_full_path(bucket, key).exists()

    async def get_upload_url(self, bucket: str, key: str, expires_in: int = 3600) -> str:
        """获取上传URL（本地存储返回文件接口的相对路径）"""
        return f"/api/v1/files/{bucket}/{key}"


class S3StorageBackend(StorageBackend):
    """S3云存储后端"""

    def __init__(self, region_name: str = 'us-east-1'):
        self.region_name = region_name
        self.s3_client = boto3.client(
            's3',
            region_name=region_name,
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key
        )

    async def upload(self, bucket: str, key: str, content: bytes, content_type: Optional[str] = None) -> str:
        """上传文件到S3"""
        upload_args = {
            'Bucket': bucket,
            'Key': key,
            'Body': content
        }
        if content_type:
            upload_args['ContentType'] = content_type

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None,
                lambda: self.s3_client.put_object(**upload_args)
            )
        except ClientError as e:
            logger.error(f"S3上传失败: {e}")
            raise

        return f"s3://{bucket}/{key}"

    async def download(self, bucket: str, key: str) -> bytes:
        """从S3下载文件"""
        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(
                None,
                lambda: self.s3_client.get_object(
                    Bucket=bucket,
                    Key=key
                )
            )
            return await loop.run_in_executor(None, response['Body'].read)

        except ClientError as e:
            if e.response['Error']['Code'] in ('NoSuchKey', '404'):
                raise FileNotFoundError(f"File not found: {bucket}/{key}")
            logger.error(f"S3下载失败: {e}")
            raise

    async def exists(self, bucket: str, key: str) -> bool:
        """检查S3文件是否存在"""
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None,
                lambda: self.s3_client.head_object(
                    Bucket=bucket,
                    Key=key
                )
            )
            return True

        except ClientError as e:
            if e.response['Error']['Code'] == '404':
                return False
            logger.error(f"S3检查文件存在失败: {e}")
            raise

    async def get_upload_url(self, bucket: str, key: str, expires_in: int = 3600) -> str:
        """获取S3预签名上传URL"""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(
                None,
                lambda: self.s3_client.generate_presigned_url(
                    'put_object',
                    Params={'Bucket': bucket, 'Key': key},
                    ExpiresIn=expires_in
                )
            )

        except ClientError as e:
            logger.error(f"S3生成上传URL失败: {e}")
            raise


_storage_backend: Optional[StorageBackend] = None


def get_storage_backend() -> StorageBackend:
    """获取存储后端实例"""
    global _storage_backend
    if _storage_backend is None:
        if settings.storage_backend == "s3":
            _storage_backend = S3StorageBackend(region_name=settings.aws_region)
        else:
            _storage_backend = LocalStorageBackend(settings.storage_root)
    return _storage_backend
