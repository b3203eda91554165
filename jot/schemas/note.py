"""
笔记相关的Pydantic模式
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from jot.schemas.editor import DocNode

AudioMime = Literal["audio/webm", "audio/m4a", "audio/mp4", "audio/mpeg", "audio/wav"]
TextMime = Literal["text/plain", "text/markdown"]


class NoteCreate(BaseModel):
    """创建笔记请求模式"""
    title: str = Field(..., description="标题", min_length=1, max_length=255)
    content_text: Optional[str] = Field(None, description="初始文本内容")
    tags: List[str] = Field(default_factory=list, description="标签", max_length=10)


class NoteUpdate(BaseModel):
    """更新笔记请求模式"""
    title: Optional[str] = Field(None, description="标题", min_length=1, max_length=255)
    content_text: Optional[str] = Field(None, description="文本内容")
    editor_json: Optional[DocNode] = Field(None, description="富文本文档")
    tags: Optional[List[str]] = Field(None, description="标签", max_length=10)


class NoteResponse(BaseModel):
    """笔记响应模式"""
    id: str = Field(..., description="笔记ID")
    title: str = Field(..., description="标题")
    content_text: Optional[str] = Field(None, description="文本内容")
    editor_json: Dict[str, Any] = Field(..., description="富文本文档")
    outline_json: Optional[Dict[str, Any]] = Field(None, description="结构化大纲")
    tags: List[str] = Field(default_factory=list, description="标签")
    created_at: datetime = Field(..., description="创建时间")
    updated_at: datetime = Field(..., description="更新时间")

    class Config:
        from_attributes = True


class TranscriptResponse(BaseModel):
    """转录响应模式"""
    text: str
    segments_json: List[Dict[str, Any]] = Field(default_factory=list)

    class Config:
        from_attributes = True


class AudioFileResponse(BaseModel):
    """音频输入响应模式"""
    id: str
    storage_path: str
    duration_s: Optional[int] = None
    mime_type: Optional[str] = None
    order_index: int = 0
    created_at: datetime
    transcript: Optional[TranscriptResponse] = None

    class Config:
        from_attributes = True


class TextInputResponse(BaseModel):
    """文本输入响应模式"""
    id: str
    storage_path: str
    mime_type: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class NoteDetailResponse(NoteResponse):
    """笔记详情响应模式，包含全部输入"""
    audio_files: List[AudioFileResponse] = Field(default_factory=list)
    text_inputs: List[TextInputResponse] = Field(default_factory=list)


class NoteSearchResult(BaseModel):
    """搜索结果条目"""
    id: str
    title: str
    tags: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PresignAudioRequest(BaseModel):
    """请求音频上传URL"""
    filename: str = Field(..., min_length=1, max_length=255)
    mime: AudioMime
    duration_s: Optional[int] = Field(None, ge=0)


class PresignTextRequest(BaseModel):
    """请求文本上传URL"""
    filename: str = Field(..., min_length=1, max_length=255)
    mime: TextMime


class PresignCaptureRequest(BaseModel):
    """旧版采集上传URL请求"""
    filename: str = Field(..., min_length=1, max_length=255)
    mime: Union[AudioMime, TextMime]


class PresignResponse(BaseModel):
    """上传URL响应"""
    uploadUrl: str
    storageKey: str


class CommitAudioRequest(BaseModel):
    """提交音频上传"""
    storage_key: str = Field(..., alias="storageKey", min_length=1)
    duration_s: Optional[int] = Field(None, ge=0)
    mime: AudioMime

    class Config:
        populate_by_name = True


class CommitTextRequest(BaseModel):
    """提交文本上传"""
    storage_key: str = Field(..., alias="storageKey", min_length=1)
    mime: Optional[TextMime] = None

    class Config:
        populate_by_name = True


class CommitCaptureRequest(BaseModel):
    """旧版采集提交"""
    storage_key: str = Field(..., alias="storageKey", min_length=1)
    duration_s: Optional[int] = Field(None, ge=0)
    mime: Optional[Union[AudioMime, TextMime]] = None

    class Config:
        populate_by_name = True
