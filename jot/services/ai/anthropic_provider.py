"""
Anthropic Claude 结构化提供商
只提供LLM能力，转录仍使用OpenAI Whisper
"""

from typing import Dict, Any, List, Tuple

import httpx

from jot.core.exceptions import AIServiceException
from jot.core.logging import ai_logger
from .base import LLMProvider, AIProvider, LLMResponse

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 4096


def split_system_prompt(messages: List[Dict[str, str]]) -> Tuple[str, List[Dict[str, str]]]:
    """Messages API 的 system 是独立字段，其余只保留 user/assistant 轮次"""
    system_parts = [m["content"] for m in messages if m["role"] == "system"]
    turns = [
        {"role": m["role"], "content": m["content"]}
        for m in messages
        if m["role"] in ("user", "assistant")
    ]
    return "\n\n".join(system_parts), turns


class AnthropicLLMProvider(LLMProvider):
    """Claude Messages API"""

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.default_model = config.get("model", "claude-3-haiku-20240307")
        self.client = httpx.AsyncClient(
            base_url=config.get("base_url") or "https://api.anthropic.com",
            timeout=config.get("timeout", 60),
            headers={
                "x-api-key": config.get("api_key") or "",
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json"
            }
        )

    def _get_provider_name(self) -> AIProvider:
        return AIProvider.ANTHROPIC

    async def chat_completion(
        self,
        messages: List[Dict[str, str]],
        model: str = None,
        temperature: float = 0.7,
        max_tokens: int = None,
        json_mode: bool = False,
        **kwargs
    ) -> LLMResponse:
        """Claude没有JSON模式，json_mode 时预填充 "{" 让回复从对象开始"""
        system_prompt, turns = split_system_prompt(messages)
        if json_mode:
            turns.append({"role": "assistant", "content": "{"})

        payload = {
            "model": model or self.default_model,
            "messages": turns,
            "max_tokens": max_tokens or DEFAULT_MAX_TOKENS,
            "temperature": temperature
        }
        if system_prompt:
            payload["system"] = system_prompt

        try:
            response = await self.client.post("/v1/messages", json=payload)
        except httpx.HTTPError as e:
            ai_logger.warning(f"Anthropic请求失败: {e}")
            raise AIServiceException(f"Anthropic LLM error: {e}")

        if response.status_code != 200:
            raise AIServiceException(f"Anthropic LLM error: {response.status_code} - {response.text}")

        data = response.json()
        text = "".join(block.get("text", "") for block in data.get("content") or [] if block.get("type") == "text")
        if json_mode:
            text = "{" + text

        usage = data.get("usage", {})
        input_tokens = usage.get("input_tokens", 0)
        output_tokens = usage.get("output_tokens", 0)
        return LLMResponse(
            content=text,
            model=data.get("model", payload["model"]),
            usage={
                "prompt_tokens": input_tokens,
                "completion_tokens": output_tokens,
                "total_tokens": input_tokens + output_tokens
            },
            finish_reason=data.get("stop_reason"),
            metadata={"id": data.get("id")}
        )

    async def close(self):
        await self.client.aclose()


def register_anthropic_providers():
    """注册Anthropic结构化提供商"""
    from .base import AIServiceFactory

    AIServiceFactory.register_llm_provider(AIProvider.ANTHROPIC, AnthropicLLMProvider)
