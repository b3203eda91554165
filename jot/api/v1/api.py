"""
API v1路由汇总
"""

from fastapi import APIRouter

from jot.api.v1.endpoints import notes, capture, regenerate, search, files

api_router = APIRouter()

# 包含所有端点路由
api_router.include_router(notes.router, prefix="/notes", tags=["notes"])
api_router.include_router(capture.router, prefix="/capture", tags=["capture"])
api_router.include_router(regenerate.router, prefix="/note", tags=["notes"])
api_router.include_router(search.router, prefix="/search", tags=["search"])
api_router.include_router(files.router, prefix="/files", tags=["file-storage"])
