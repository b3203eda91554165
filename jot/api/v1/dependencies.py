"""
API依赖项
"""

from typing import Any, Callable, Dict

from fastapi import Depends
from sqlalchemy.ext.asyncio import async_sessionmaker

from jot.core.auth import get_current_user_id
from jot.core.ratelimit import RateLimiter, rate_limiter
from jot.core.storage import StorageBackend, get_storage_backend
from jot.db.session import get_session_factory
from jot.services.note import NoteService
from jot.services.pipeline import PipelineOrchestrator
from jot.services.structuring import ContentStructurer
from jot.services.transcription import TranscriptionAdapter


def get_note_service(
    session_factory: async_sessionmaker = Depends(get_session_factory)
) -> NoteService:
    return NoteService(session_factory)


def get_storage() -> StorageBackend:
    return get_storage_backend()


def get_transcriber() -> TranscriptionAdapter:
    return TranscriptionAdapter()


def get_structurer() -> ContentStructurer:
    return ContentStructurer()


def get_pipeline(
    note_service: NoteService = Depends(get_note_service),
    storage: StorageBackend = Depends(get_storage),
    transcriber: TranscriptionAdapter = Depends(get_transcriber),
    structurer: ContentStructurer = Depends(get_structurer)
) -> PipelineOrchestrator:
    return PipelineOrchestrator(
        note_service=note_service,
        storage=storage,
        transcriber=transcriber,
        structurer=structurer
    )


def get_rate_limiter() -> RateLimiter:
    return rate_limiter


def rate_limit(operation: str) -> Callable:
    """按操作类型限流的依赖项工厂"""

    async def dependency(
        user_id: str = Depends(get_current_user_id),
        limiter: RateLimiter = Depends(get_rate_limiter)
    ) -> Dict[str, Any]:
        return await limiter.hit(operation, user_id)

    return dependency
