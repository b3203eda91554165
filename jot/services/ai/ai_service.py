"""
AI服务管理器
统一管理STT和LLM服务
"""

from typing import Dict, Optional

from .base import (
    AIServiceFactory, STTProvider, LLMProvider, AIConfig
)


class AIService:
    """AI服务：持有当前配置的转录和结构化提供商"""

    def __init__(self, config: AIConfig):
        self.config = config

        self.stt_provider: STTProvider = AIServiceFactory.create_stt_provider(
            config.stt_provider,
            config.stt_config
        )
        self.llm_provider: LLMProvider = AIServiceFactory.create_llm_provider(
            config.llm_provider,
            config.llm_config
        )

    def get_provider_info(self) -> Dict[str, str]:
        """获取当前使用的提供商信息"""
        return {
            "stt_provider": self.stt_provider.provider.value,
            "llm_provider": self.llm_provider.provider.value
        }

    async def close(self):
        await self.stt_provider.close()
        await self.llm_provider.close()


# 全局AI服务实例
ai_service: Optional[AIService] = None


def init_ai_service(config: AIConfig) -> AIService:
    """初始化AI服务"""
    global ai_service
    ai_service = AIService(config)
    return ai_service


def get_ai_service() -> AIService:
    """获取AI服务实例"""
    if ai_service is None:
        raise RuntimeError("AI service not initialized. Call init_ai_service() first.")
    return ai_service


async def shutdown_ai_service():
    """关闭AI服务并释放连接"""
    global ai_service
    if ai_service is not None:
        await ai_service.close()
        ai_service = None
