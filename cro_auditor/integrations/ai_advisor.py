"""
AI advisor used by the audit workflow.

Wraps the LLM client with the two call shapes the workflow needs (structured
JSON and free text). Every failure mode, including AI being disabled, a
timeout, a transport error or unparsable output, returns None so the
caller takes its deterministic fallback.
"""

import asyncio
import json
import logging
from typing import Any, Optional

from cro_auditor.config import settings
from cro_auditor.integrations.llm import LLMClient, Message

logger = logging.getLogger(__name__)


class AIAdvisor:
    """Optional-answer facade over LLMClient."""

    def __init__(
        self,
        client: Optional[LLMClient] = None,
        enabled: Optional[bool] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.enabled = settings.AI_ENABLED if enabled is None else enabled
        self.timeout_seconds = timeout_seconds or settings.AI_TIMEOUT_SECONDS
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> LLMClient:
        if self._client is None:
            self._client = LLMClient()
        return self._client

    async def analyze_with_json(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
    ) -> Optional[Any]:
        """Structured request; returns the parsed JSON value or None."""
        if not self.enabled:
            return None
        try:
            return await asyncio.wait_for(
                self.client.generate_json(system_prompt, user_prompt, temperature=temperature),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"AI JSON request timed out after {self.timeout_seconds}s")
        except json.JSONDecodeError as e:
            logger.warning(f"AI returned invalid JSON: {e}")
        except Exception as e:
            logger.warning(f"AI JSON request failed: {e}", exc_info=True)
        return None

    async def chat(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ) -> Optional[str]:
        """Free-text request; returns the stripped reply or None."""
        if not self.enabled:
            return None
        messages = [
            Message(role="system", content=system_prompt),
            Message(role="user", content=user_prompt),
        ]
        try:
            response = await asyncio.wait_for(
                self.client.chat(messages, temperature=temperature, max_tokens=max_tokens),
                timeout=self.timeout_seconds,
            )
            content = (response.content or "").strip()
        except asyncio.TimeoutError:
            logger.warning(f"AI chat request timed out after {self.timeout_seconds}s")
            return None
        except Exception as e:
            logger.warning(f"AI chat request failed: {e}", exc_info=True)
            return None
        return content or None

    async def close(self):
        if self._owns_client and self._client is not None:
            await self._client.close()
