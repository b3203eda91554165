"""
测试配置和fixtures
"""

import os
import tempfile

# 必须在导入 jot 之前设置：不写日志文件，存储目录放到临时目录
_TEST_ROOT = tempfile.mkdtemp(prefix="jot-test-")
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("STORAGE_ROOT", os.path.join(_TEST_ROOT, "uploads"))
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_ROOT}/default.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from typing import Any, AsyncGenerator, Dict, List, Optional, Union

import pytest
from httpx import ASGITransport, AsyncClient

from jot.api.v1 import dependencies as deps
from jot.core.auth import auth_service
from jot.core.exceptions import AIServiceException
from jot.core.ratelimit import RateLimiter
from jot.core.storage import LocalStorageBackend
from jot.db.init_db import create_tables
from jot.db.session import create_database_engine, create_session_factory, get_session_factory
from jot.main import app
from jot.services.ai.base import AIProvider, LLMProvider, LLMResponse, STTProvider, TranscriptionResult
from jot.services.note import NoteService
from jot.services.pipeline import PipelineOrchestrator
from jot.services.structuring import ContentStructurer
from jot.services.transcription import TranscriptionAdapter


USER_ID = "user-1"
OTHER_USER_ID = "user-2"

VALID_OUTLINE = {
    "title": "Weekly sync",
    "highlights": ["Shipped version 2", "Signed 3 new customers"],
    "insights": ["Users ask for export"],
    "open_questions": ["When do we launch in Europe"],
    "next_steps": [{"text": "Write release notes", "due": None}],
    "tags": ["work"],
    "lang": "en"
}

# 各容器的最小文件头
WEBM_BYTES = b"\x1a\x45\xdf\xa3" + b"\x00" * 64
MP4_BYTES = b"\x00\x00\x00\x20ftypisom" + b"\x00" * 64
M4A_BYTES = b"\x00\x00\x00\x20ftypM4A " + b"\x00" * 64
WAV_BYTES = b"RIFF\x24\x00\x00\x00WAVEfmt " + b"\x00" * 64


class FakeSTTProvider(STTProvider):
    """记录调用的转录提供商"""

    def __init__(self, text: str = "hello from the recording", error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.calls: List[Dict[str, Any]] = []
        super().__init__({})

    def _get_provider_name(self) -> AIProvider:
        return AIProvider.OPENAI

    async def transcribe_audio(self, audio_file, language: str = "auto", **kwargs) -> TranscriptionResult:
        self.calls.append({
            "path": audio_file,
            "name": audio_file.name,
            "existed": audio_file.exists(),
            "content": audio_file.read_bytes()
        })
        if self.error is not None:
            raise self.error
        return TranscriptionResult(
            text=self.text,
            segments=[{"start": 0.0, "end": 1.5, "text": self.text}]
        )


class FakeLLMProvider(LLMProvider):
    """按顺序返回预设响应的大语言模型；响应用完后抛出服务异常"""

    def __init__(self, responses: Optional[List[Union[str, Exception]]] = None):
        self.responses = list(responses or [])
        self.calls: List[Dict[str, Any]] = []
        super().__init__({})

    def _get_provider_name(self) -> AIProvider:
        return AIProvider.OPENAI

    async def chat_completion(
        self,
        messages,
        model: str = None,
        temperature: float = 0.7,
        max_tokens: int = None,
        json_mode: bool = False,
        **kwargs
    ) -> LLMResponse:
        self.calls.append({
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "json_mode": json_mode
        })
        if not self.responses:
            raise AIServiceException("no scripted response")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return LLMResponse(content=response, model="fake", usage={})


@pytest.fixture
async def engine(tmp_path):
    """每个测试使用独立的文件数据库"""
    engine = create_database_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def note_service(session_factory) -> NoteService:
    return NoteService(session_factory)


@pytest.fixture
def storage(tmp_path) -> LocalStorageBackend:
    return LocalStorageBackend(str(tmp_path / "storage"))


@pytest.fixture
def stt() -> FakeSTTProvider:
    return FakeSTTProvider()


@pytest.fixture
def llm() -> FakeLLMProvider:
    return FakeLLMProvider()


@pytest.fixture
def orchestrator(note_service, storage, stt, llm) -> PipelineOrchestrator:
    return PipelineOrchestrator(
        note_service=note_service,
        storage=storage,
        transcriber=TranscriptionAdapter(stt_provider=stt),
        structurer=ContentStructurer(llm_provider=llm),
        optimistic_writes=False
    )


@pytest.fixture
async def client(session_factory, storage, stt, llm) -> AsyncGenerator[AsyncClient, None]:
    """提供测试客户端，依赖项替换为测试实现"""
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[deps.get_storage] = lambda: storage
    app.dependency_overrides[deps.get_transcriber] = lambda: TranscriptionAdapter(stt_provider=stt)
    app.dependency_overrides[deps.get_structurer] = lambda: ContentStructurer(llm_provider=llm)
    app.dependency_overrides[deps.get_rate_limiter] = lambda: RateLimiter(redis_getter=lambda: None)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict:
    """生成认证头"""
    token = auth_service.create_access_token(USER_ID)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_auth_headers() -> dict:
    token = auth_service.create_access_token(OTHER_USER_ID)
    return {"Authorization": f"Bearer {token}"}
