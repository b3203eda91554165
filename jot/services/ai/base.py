"""
AI能力抽象
转录(STT)把音频变成带时间戳的文本，结构化(LLM)把文本整理成JSON
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional, Type, Union
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class AIProvider(Enum):
    """AI服务提供商"""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


@dataclass
class TranscriptionResult:
    """转录结果，segments 形如 [{start, end, text}]"""
    text: str
    segments: List[Dict[str, Any]] = field(default_factory=list)
    language: Optional[str] = None


@dataclass
class LLMResponse:
    """模型响应"""
    content: str
    model: str
    usage: Dict[str, int]
    finish_reason: Optional[str] = None
    metadata: Dict[str, Any] = None


class CapabilityProvider(ABC):
    """提供商公共部分：保存配置，声明自己的提供商名称"""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.provider = self._get_provider_name()

    @abstractmethod
    def _get_provider_name(self) -> AIProvider:
        pass

    async def close(self):
        """释放底层连接"""
        pass


class STTProvider(CapabilityProvider):
    """语音转录能力"""

    @abstractmethod
    async def transcribe_audio(
        self,
        audio_file: Union[Path, bytes],
        language: str = "auto",
        **kwargs
    ) -> TranscriptionResult:
        """
        转录音频文件

        Args:
            audio_file: 暂存的音频文件路径，上游按扩展名识别格式
            language: 语言代码，'auto' 表示自动识别

        Raises:
            TranscriptionException: 上游调用失败，携带失败分类
        """


class LLMProvider(CapabilityProvider):
    """结构化能力"""

    @abstractmethod
    async def chat_completion(
        self,
        messages: List[Dict[str, str]],
        model: str = None,
        temperature: float = 0.7,
        max_tokens: int = None,
        json_mode: bool = False,
        **kwargs
    ) -> LLMResponse:
        """
        对话补全

        json_mode 为真时要求模型只输出一个JSON对象。

        Raises:
            AIServiceException: 上游调用失败
        """


@dataclass
class AIConfig:
    """AI服务配置"""
    stt_provider: AIProvider
    llm_provider: AIProvider
    stt_config: Dict[str, Any]
    llm_config: Dict[str, Any]
    default_stt_model: str = None
    default_llm_model: str = None


class AIServiceFactory:
    """按提供商名称创建能力实例"""

    _stt_providers: Dict[AIProvider, Type[STTProvider]] = {}
    _llm_providers: Dict[AIProvider, Type[LLMProvider]] = {}

    @classmethod
    def register_stt_provider(cls, provider: AIProvider, provider_class: Type[STTProvider]):
        cls._stt_providers[provider] = provider_class

    @classmethod
    def register_llm_provider(cls, provider: AIProvider, provider_class: Type[LLMProvider]):
        cls._llm_providers[provider] = provider_class

    @staticmethod
    def _create(registry: Dict[AIProvider, type], kind: str, provider: AIProvider, config: Dict[str, Any]):
        if provider not in registry:
            raise ValueError(f"Unknown {kind} provider: {provider}")
        return registry[provider](config)

    @classmethod
    def create_stt_provider(cls, provider: AIProvider, config: Dict[str, Any]) -> STTProvider:
        return cls._create(cls._stt_providers, "STT", provider, config)

    @classmethod
    def create_llm_provider(cls, provider: AIProvider, config: Dict[str, Any]) -> LLMProvider:
        return cls._create(cls._llm_providers, "LLM", provider, config)
