"""
OpenAI API集成实现
包含Whisper STT和GPT LLM服务
"""

from pathlib import Path
from typing import Dict, Any, List, Optional, Union

import httpx
import openai
from openai import AsyncOpenAI

from jot.core.exceptions import (
    AIServiceException,
    TranscriptionException,
    TranscriptionFailureReason
)
from jot.core.logging import ai_logger
from .base import (
    STTProvider, LLMProvider, AIProvider,
    TranscriptionResult, LLMResponse
)


def build_http_client(config: Dict[str, Any]) -> Optional[httpx.AsyncClient]:
    """按代理配置构建HTTP客户端，未配置代理时返回None"""
    proxy = config.get("https_proxy") or config.get("http_proxy")
    if not proxy:
        return None

    # 添加代理认证
    if config.get("proxy_auth") and "@" not in proxy:
        scheme, _, rest = proxy.partition("://")
        proxy = f"{scheme}://{config['proxy_auth']}@{rest}"

    return httpx.AsyncClient(proxy=proxy, timeout=config.get("timeout", 60))


def build_openai_client(config: Dict[str, Any]) -> AsyncOpenAI:
    return AsyncOpenAI(
        api_key=config.get("api_key"),
        base_url=config.get("base_url"),  # 支持自定义endpoint
        timeout=config.get("timeout", 60),
        max_retries=0,
        http_client=build_http_client(config)
    )


def classify_openai_error(error: Exception) -> TranscriptionFailureReason:
    """把OpenAI SDK异常归类为转录失败原因"""
    if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return TranscriptionFailureReason.UPSTREAM_AUTH
    if isinstance(error, openai.RateLimitError):
        return TranscriptionFailureReason.UPSTREAM_RATE_LIMITED
    # APITimeoutError 是 APIConnectionError 的子类
    if isinstance(error, (openai.APIConnectionError, openai.InternalServerError)):
        return TranscriptionFailureReason.UPSTREAM_UNAVAILABLE
    if isinstance(error, (openai.BadRequestError, openai.UnprocessableEntityError)):
        return TranscriptionFailureReason.INVALID_FORMAT
    return TranscriptionFailureReason.UNKNOWN


def _segment_field(segment: Any, name: str):
    if isinstance(segment, dict):
        return segment.get(name)
    return getattr(segment, name, None)


class OpenAISTTProvider(STTProvider):
    """OpenAI Whisper语音转录服务"""

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.client = build_openai_client(config)
        self.default_model = config.get("model", "whisper-1")

    def _get_provider_name(self) -> AIProvider:
        return AIProvider.OPENAI

    async def transcribe_audio(
        self,
        audio_file: Union[Path, bytes],
        language: str = "auto",
        **kwargs
    ) -> TranscriptionResult:
        """使用Whisper API转录音频"""
        transcription_params = {
            "model": kwargs.get("model", self.default_model),
            "response_format": "verbose_json",  # 获取分段时间戳
            "timestamp_granularities": ["segment"]
        }

        if language != "auto":
            transcription_params["language"] = language

        try:
            response = await self.client.audio.transcriptions.create(
                file=audio_file,
                **transcription_params
            )
        except openai.OpenAIError as e:
            reason = classify_openai_error(e)
            ai_logger.error(f"Whisper转录失败 ({reason.value}): {e}")
            raise TranscriptionException(f"Transcription failed: {e}", reason=reason)

        # 缺少起止时间或文本的分段直接丢弃
        segments = []
        for seg in getattr(response, "segments", None) or []:
            start = _segment_field(seg, "start")
            end = _segment_field(seg, "end")
            text = _segment_field(seg, "text")
            if start is None or end is None or text is None:
                continue
            segments.append({"start": float(start), "end": float(end), "text": text})

        return TranscriptionResult(
            text=response.text or "",
            segments=segments,
            language=getattr(response, "language", None)
        )

    async def close(self):
        await self.client.close()


class OpenAILLMProvider(LLMProvider):
    """OpenAI GPT大语言模型服务"""

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.client = build_openai_client(config)
        self.default_model = config.get("model", "gpt-4o-mini")

    def _get_provider_name(self) -> AIProvider:
        return AIProvider.OPENAI

    async def chat_completion(
        self,
        messages: List[Dict[str, str]],
        model: str = None,
        temperature: float = 0.7,
        max_tokens: int = None,
        json_mode: bool = False,
        **kwargs
    ) -> LLMResponse:
        """GPT聊天完成"""
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self.client.chat.completions.create(
                model=model or self.default_model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs
            )
        except openai.OpenAIError as e:
            raise AIServiceException(f"OpenAI LLM error: {str(e)}")

        usage = {}
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens
            }

        return LLMResponse(
            content=response.choices[0].message.content or "",
            model=response.model,
            usage=usage,
            finish_reason=response.choices[0].finish_reason,
            metadata={"id": response.id}
        )

    async def close(self):
        await self.client.close()


# 注册OpenAI提供商到工厂
def register_openai_providers():
    """注册OpenAI服务提供商"""
    from .base import AIServiceFactory

    AIServiceFactory.register_stt_provider(
        AIProvider.OPENAI,
        OpenAISTTProvider
    )
    AIServiceFactory.register_llm_provider(
        AIProvider.OPENAI,
        OpenAILLMProvider
    )
