"""ComplianceFoundry - AI Service

AI 服务 - OpenAI 兼容的 chat/completions 调用、重试机制、响应清洗
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import httpx

from compliancefoundry.core.config import settings

logger = logging.getLogger(__name__)


# 提供商默认 URL
PROVIDER_DEFAULTS = {
    "gemini": "https://generativelanguage.googleapis.com/v1beta/openai",
    "openai": "https://api.openai.com/v1",
    "deepseek": "https://api.deepseek.com",
}


@dataclass
class GenerationConfig:
    """生成配置"""
    model: str = "gemini-2.5-pro"
    temperature: float = 0.2
    max_tokens: int = 8192
    max_retries: int = 3
    retry_delay: float = 1.0
    timeout: float = 120.0
    json_mode: bool = False

    @classmethod
    def from_settings(cls, *, model: Optional[str] = None, json_mode: bool = False) -> "GenerationConfig":
        return cls(
            model=model or settings.AI_MODEL,
            temperature=settings.AI_TEMPERATURE,
            max_tokens=settings.AI_MAX_TOKENS,
            max_retries=settings.AI_MAX_RETRIES,
            timeout=settings.AI_TIMEOUT_S,
            json_mode=json_mode,
        )


class AIServiceError(Exception):
    """AI 服务错误"""
    pass


class AIService:
    """AI 服务"""

    def __init__(
        self,
        *,
        provider: Optional[str] = None,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.provider = (provider or settings.AI_PROVIDER).lower()
        self.base_url = base_url or settings.AI_BASE_URL or PROVIDER_DEFAULTS.get(
            self.provider, PROVIDER_DEFAULTS["openai"]
        )
        self.api_key = api_key if api_key is not None else settings.AI_API_KEY
        self._transport = transport

    async def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        gen_config: Optional[GenerationConfig] = None,
        validator: Optional[Callable[[str], bool]] = None,
    ) -> str:
        """
        带重试机制的 AI 调用

        Args:
            prompt: 用户提示词
            system_prompt: 系统提示词
            gen_config: 生成配置
            validator: 响应验证函数

        Returns:
            AI 响应内容

        Raises:
            AIServiceError: 重试次数用尽或验证失败
        """
        gen_config = gen_config or GenerationConfig.from_settings()
        last_error: Optional[Exception] = None

        for attempt in range(gen_config.max_retries):
            try:
                response = await self.call_openai_compatible(
                    prompt=prompt,
                    system_prompt=system_prompt,
                    gen_config=gen_config,
                )

                # 验证响应（如果提供了验证器）
                if validator and not validator(response):
                    logger.warning(f"AI 响应验证失败 (尝试 {attempt + 1}/{gen_config.max_retries})")
                    last_error = AIServiceError("响应验证失败")
                    continue

                return response

            except httpx.HTTPStatusError as e:
                logger.warning(f"AI API 错误 (尝试 {attempt + 1}/{gen_config.max_retries}): {e}")
                last_error = e
                if e.response.status_code == 429:  # Rate limit
                    await asyncio.sleep(gen_config.retry_delay * (attempt + 1))
                continue

            except httpx.TimeoutException as e:
                logger.warning(f"AI API 超时 (尝试 {attempt + 1}/{gen_config.max_retries})")
                last_error = e
                continue

            except (httpx.HTTPError, KeyError, IndexError, ValueError) as e:
                logger.error(f"AI 调用未知错误: {e}")
                last_error = e
                break

        raise AIServiceError(f"AI 调用失败 (已重试 {gen_config.max_retries} 次): {last_error}")

    async def call_openai_compatible(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        gen_config: Optional[GenerationConfig] = None,
    ) -> str:
        start_time = time.time()
        gen_config = gen_config or GenerationConfig.from_settings()

        url = f"{self.base_url.rstrip('/')}/chat/completions"

        messages: List[Dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        payload: Dict[str, Any] = {
            "model": gen_config.model,
            "messages": messages,
            "temperature": gen_config.temperature,
            "max_tokens": gen_config.max_tokens,
        }
        if gen_config.json_mode:
            payload["response_format"] = {"type": "json_object"}

        async with httpx.AsyncClient(transport=self._transport) as client:
            response = await client.post(
                url,
                json=payload,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=gen_config.timeout,
            )
            response.raise_for_status()
            result = response.json()
            content = result["choices"][0]["message"]["content"]

        duration = int((time.time() - start_time) * 1000)
        logger.info(f"AI 调用完成: model={gen_config.model} duration={duration}ms")
        return content


# ================== 响应清洗 ==================

def strip_code_fences(content: str) -> str:
    """清理 Markdown 代码块标记"""
    cleaned = content.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_json_response(content: Optional[str]) -> Any:
    """解析 AI 返回的 JSON，空响应或非法 JSON 抛出 AIServiceError"""
    if not content or not content.strip():
        raise AIServiceError("Empty response from AI provider")
    try:
        return json.loads(strip_code_fences(content))
    except json.JSONDecodeError as e:
        raise AIServiceError(f"AI 响应不是有效的 JSON 格式: {e}") from e


def is_json_response(content: Optional[str]) -> bool:
    """complete() 的 validator：非 JSON 的响应触发重试"""
    try:
        parse_json_response(content)
    except AIServiceError:
        return False
    return True
