"""OpenAI-compatible chat/completions client (OpenAI, OpenRouter, DeepSeek, ...)."""

import logging
import time
from typing import Optional

import httpx

from analyst.config import Settings, get_settings
from analyst.llm.gateway import COMPLETED, ERROR, TIMEOUT, ChatPrompt, GatewayError, LLMResult, ModelGateway

logger = logging.getLogger(__name__)

# OpenAI finish reasons mapped onto the Gemini vocabulary used by the gateway
FINISH_REASONS = {
    "stop": "STOP",
    "length": "MAX_TOKENS",
    "content_filter": "SAFETY",
}


class OpenAIClient(ModelGateway):
    provider = "openai"

    def __init__(self, settings: Optional[Settings] = None, client: Optional[httpx.AsyncClient] = None):
        settings = settings or get_settings()
        self.api_key = (settings.OPENAI_API_KEY or "").strip()
        super().__init__(settings, client)
        self.base_url = (settings.OPENAI_BASE_URL or "").strip().rstrip("/")
        self.model = settings.OPENAI_MODEL

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def complete(
        self,
        prompt: ChatPrompt,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> LLMResult:
        if not self.api_key:
            raise GatewayError("OPENAI_API_KEY not configured")

        client = await self._get_client()
        payload = {
            "model": self.model,
            "messages": prompt.to_messages(),
            "max_tokens": max_tokens or self.max_tokens,
            "temperature": temperature if temperature is not None else self.temperature,
            "top_p": self.top_p,
        }

        start_time = time.time()
        try:
            response = await client.post(f"{self.base_url}/chat/completions", json=payload, headers=self._headers())
            elapsed_ms = int((time.time() - start_time) * 1000)

            if response.status_code != 200:
                error_text = response.text[:500]
                logger.error(f"[OPENAI] API error {response.status_code}: {error_text}")
                return self._failed(ERROR, elapsed_ms, self.model, f"HTTP {response.status_code}: {error_text}")

            data = response.json()
            choices = data.get("choices", [])
            if not choices:
                logger.warning("[OPENAI] Empty response")
                return self._failed(ERROR, elapsed_ms, self.model, "No choices in response")

            choice = choices[0]
            text = choice.get("message", {}).get("content") or ""
            raw_reason = choice.get("finish_reason")
            usage = data.get("usage", {})

            return LLMResult(
                status=COMPLETED,
                text=text,
                tokens_in=usage.get("prompt_tokens", 0),
                tokens_out=usage.get("completion_tokens", 0),
                exec_ms=elapsed_ms,
                model_version=data.get("model", self.model),
                finish_reason=FINISH_REASONS.get(raw_reason, raw_reason.upper() if raw_reason else None),
            )

        except httpx.TimeoutException:
            elapsed_ms = int((time.time() - start_time) * 1000)
            logger.error(f"[OPENAI] timeout after {elapsed_ms}ms")
            return self._failed(TIMEOUT, elapsed_ms, self.model, "Request timed out")
        except (httpx.HTTPError, ValueError) as e:
            elapsed_ms = int((time.time() - start_time) * 1000)
            logger.error(f"[OPENAI] error: {e}")
            return self._failed(ERROR, elapsed_ms, self.model, str(e))
