"""
LLM Integration Client

Thin chat-completion client over httpx. Two wire dialects are spoken:
- OpenAI-compatible chat completions (OpenAI, LM Studio)
- Anthropic messages
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import httpx
from pydantic import BaseModel

from cro_auditor.config import settings

ANTHROPIC_VERSION = "2023-06-01"


class LLMProvider(str, Enum):
    LOCAL = "local"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


class Message(BaseModel):
    role: str  # system, user, assistant
    content: str


class LLMResponse(BaseModel):
    content: str
    model: str
    usage: Optional[Dict[str, int]] = None
    finish_reason: Optional[str] = None


@dataclass
class LLMConfig:
    provider: LLMProvider
    base_url: str
    api_key: str
    model: str
    temperature: float = 0.7
    max_tokens: int = 2048
    timeout: float = 120.0

    @classmethod
    def from_settings(cls) -> "LLMConfig":
        return cls(
            provider=LLMProvider(settings.LLM_PROVIDER),
            base_url=settings.LLM_BASE_URL.rstrip("/"),
            api_key=settings.LLM_API_KEY,
            model=settings.LLM_MODEL,
            timeout=settings.AI_TIMEOUT_SECONDS,
        )

    @property
    def is_anthropic(self) -> bool:
        return self.provider == LLMProvider.ANTHROPIC


def strip_code_fences(content: str) -> str:
    """Remove a surrounding ```json ... ``` block, if any."""
    content = content.strip()
    if content.startswith("```json"):
        content = content[7:]
    elif content.startswith("```"):
        content = content[3:]
    if content.endswith("```"):
        content = content[:-3]
    return content.strip()


def auth_headers(config: LLMConfig) -> Dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if config.is_anthropic:
        headers["x-api-key"] = config.api_key
        headers["anthropic-version"] = ANTHROPIC_VERSION
    elif config.api_key and config.api_key != "not-needed":
        # LM Studio accepts any key, or none
        headers["Authorization"] = f"Bearer {config.api_key}"
    return headers


def build_request(
    config: LLMConfig,
    messages: List[Message],
    temperature: Optional[float],
    max_tokens: Optional[int],
    json_mode: bool,
) -> Tuple[str, Dict[str, Any]]:
    """Endpoint path and body for one chat call in the provider's dialect."""
    payload: Dict[str, Any] = {
        "model": config.model,
        "max_tokens": max_tokens or config.max_tokens,
        "temperature": config.temperature if temperature is None else temperature,
    }

    if config.is_anthropic:
        system = "\n\n".join(m.content for m in messages if m.role == "system")
        if system:
            payload["system"] = system
        payload["messages"] = [
            {"role": m.role, "content": m.content} for m in messages if m.role != "system"
        ]
        return "/messages", payload

    payload["messages"] = [{"role": m.role, "content": m.content} for m in messages]
    if json_mode:
        payload["response_format"] = {"type": "json_object"}
    return "/chat/completions", payload


def parse_response(config: LLMConfig, data: Dict[str, Any]) -> LLMResponse:
    model = data.get("model", config.model)

    if config.is_anthropic:
        blocks = data.get("content") or []
        usage = data.get("usage") or {}
        return LLMResponse(
            content="".join(b.get("text", "") for b in blocks if b.get("type", "text") == "text"),
            model=model,
            usage={
                "prompt_tokens": usage.get("input_tokens", 0),
                "completion_tokens": usage.get("output_tokens", 0),
            },
            finish_reason=data.get("stop_reason"),
        )

    choice = data["choices"][0]
    return LLMResponse(
        content=choice["message"].get("content") or "",
        model=model,
        usage=data.get("usage"),
        finish_reason=choice.get("finish_reason"),
    )


class LLMClient:
    """Chat client for the configured LLM provider."""

    def __init__(self, config: Optional[LLMConfig] = None):
        self.config = config or LLMConfig.from_settings()
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=httpx.Timeout(self.config.timeout),
                headers=auth_headers(self.config),
            )
        return self._client

    async def chat(
        self,
        messages: List[Message],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Send one chat request. Transport and HTTP status errors propagate."""
        path, payload = build_request(self.config, messages, temperature, max_tokens, json_mode)
        client = await self._get_client()
        response = await client.post(path, json=payload)
        response.raise_for_status()
        return parse_response(self.config, response.json())

    async def generate_json(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
    ) -> Any:
        """Ask for a JSON answer and parse it.

        Raises json.JSONDecodeError when the model does not return JSON.
        """
        messages = [
            Message(role="system", content=system_prompt),
            Message(role="user", content=f"{user_prompt}\n\nRespond with ONLY valid JSON, no other text."),
        ]
        # Anthropic has no JSON response mode
        response = await self.chat(messages, temperature=temperature, json_mode=not self.config.is_anthropic)
        return json.loads(strip_code_fences(response.content))

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
