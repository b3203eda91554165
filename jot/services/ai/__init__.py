"""
AI服务模块初始化
"""

from jot.core.logging import ai_logger
from .base import (
    AIProvider, AIConfig, AIServiceFactory, STTProvider, LLMProvider,
    TranscriptionResult, LLMResponse
)
from .ai_service import AIService, init_ai_service, get_ai_service, shutdown_ai_service
from .openai_provider import register_openai_providers
from .anthropic_provider import register_anthropic_providers


def initialize_ai_services(config: AIConfig) -> AIService:
    """注册提供商并创建全局AI服务"""
    register_openai_providers()
    register_anthropic_providers()

    service = init_ai_service(config)
    ai_logger.info(f"AI服务初始化完成: {service.get_provider_info()}")
    return service


async def shutdown_ai_services():
    """关闭AI服务"""
    await shutdown_ai_service()
    ai_logger.info("AI服务已关闭")


__all__ = [
    'AIProvider',
    'AIConfig',
    'AIServiceFactory',
    'STTProvider',
    'LLMProvider',
    'TranscriptionResult',
    'LLMResponse',
    'AIService',
    'get_ai_service',
    'initialize_ai_services',
    'shutdown_ai_services'
]
