"""
QuickInsight LLM Client
=======================

Minimal model client: chat(messages, temperature, max_tokens) -> text.

Providers:
- openai: any OpenAI-compatible endpoint (POST {endpoint}/chat/completions)
  through httpx
- anthropic: Claude through the anthropic SDK

Every transport or HTTP failure is raised as ModelClientError. Callers
decide whether that is fatal; the query-type router degrades instead.
"""

import logging
from typing import Dict, List, Optional

import anthropic
import httpx

from ..config import AppConfig, get_llm_config
from ..errors import ModelClientError

logger = logging.getLogger(__name__)


class LLMClient:
    """Async chat client for the configured model provider."""

    def __init__(self,
                 provider: str = "openai",
                 endpoint: str = "",
                 api_key: str = "",
                 model: str = "",
                 timeout: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.provider = provider
        self.endpoint = (endpoint or "").rstrip("/")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls, config: Optional[Dict] = None) -> "LLMClient":
        cfg = config or get_llm_config()
        return cls(
            provider=cfg.get("provider", "openai"),
            endpoint=cfg.get("endpoint", ""),
            api_key=cfg.get("api_key", ""),
            model=cfg.get("model", ""),
            timeout=cfg.get("timeout", 30.0),
        )

    async def chat(self, messages: List[Dict[str, str]],
                   temperature: float = 0.3,
                   max_tokens: int = 512) -> str:
        """Send a chat exchange and return the model's text."""
        if self.provider == "anthropic":
            return await self._call_claude(messages, temperature, max_tokens)
        return await self._call_openai_compatible(messages, temperature, max_tokens)

    async def _call_openai_compatible(self, messages, temperature, max_tokens) -> str:
        if not self.endpoint:
            raise ModelClientError("LLM_ENDPOINT not configured")

        url = f"{self.endpoint}/chat/completions"
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        logger.info(f"[LLM] Calling {self.model} at {self.endpoint} ({len(messages)} messages)")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"[LLM] Request failed: {e}")
            raise ModelClientError(f"LLM request failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"[LLM] Error {response.status_code}: {response.text[:200]}")
            raise ModelClientError(f"LLM error: {response.status_code}")

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ModelClientError(f"Malformed LLM response: {e}") from e

        if not content:
            raise ModelClientError("Empty LLM response")

        logger.info(f"[LLM] Response: {len(content)} chars")
        return content

    async def _call_claude(self, messages, temperature, max_tokens) -> str:
        if not self.api_key:
            raise ModelClientError("Claude API key not configured")

        system_prompt = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        conversation = [m for m in messages if m["role"] != "system"]

        client = anthropic.AsyncAnthropic(api_key=self.api_key, timeout=self.timeout)
        logger.info(f"[LLM] Calling Claude {self.model} ({len(conversation)} messages)")

        try:
            response = await client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_prompt or anthropic.NOT_GIVEN,
                messages=conversation,
            )
        except anthropic.APIError as e:
            logger.error(f"[LLM] Claude error: {e}")
            raise ModelClientError(f"Claude error: {e}") from e

        text = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")
        if not text:
            raise ModelClientError("Empty Claude response")

        logger.info(f"[LLM] Claude response: {len(text)} chars")
        return text


def create_llm_client() -> Optional[LLMClient]:
    """Client for the environment's model settings, or None when no model is configured."""
    if not AppConfig.llm_configured():
        logger.info("[LLM] No model configured, keyword classification only")
        return None
    return LLMClient.from_config()
