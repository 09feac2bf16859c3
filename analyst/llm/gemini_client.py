"""
Google Gemini API client for analyst answers.

System prompt and match context travel as systemInstruction; prior turns map
to user/model contents.
"""

import logging
import time
from typing import Optional

import httpx

from analyst.config import Settings, get_settings
from analyst.llm.gateway import COMPLETED, ERROR, TIMEOUT, ChatPrompt, GatewayError, LLMResult, ModelGateway

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
DEFAULT_MODEL = "gemini-2.0-flash"


class GeminiClient(ModelGateway):
    """Async client for Google Gemini API."""

    provider = "gemini"

    def __init__(self, settings: Optional[Settings] = None, client: Optional[httpx.AsyncClient] = None):
        settings = settings or get_settings()
        super().__init__(settings, client)
        self.api_key = (settings.GEMINI_API_KEY or "").strip()
        self.model = settings.GEMINI_MODEL or DEFAULT_MODEL

    def build_payload(
        self,
        prompt: ChatPrompt,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> dict:
        contents = [
            {"role": "model" if turn.role == "assistant" else "user", "parts": [{"text": turn.content}]}
            for turn in prompt.history
        ]
        contents.append({"role": "user", "parts": [{"text": prompt.question}]})
        return {
            "systemInstruction": {"parts": [{"text": prompt.instructions}]},
            "contents": contents,
            "generationConfig": {
                "maxOutputTokens": max_tokens or self.max_tokens,
                "temperature": temperature if temperature is not None else self.temperature,
                "topP": self.top_p,
            },
        }

    async def complete(
        self,
        prompt: ChatPrompt,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> LLMResult:
        if not self.api_key:
            raise GatewayError("GEMINI_API_KEY not configured")

        client = await self._get_client()
        url = f"{GEMINI_BASE_URL}/{self.model}:generateContent?key={self.api_key}"
        payload = self.build_payload(prompt, max_tokens, temperature)

        start_time = time.time()
        try:
            response = await client.post(url, json=payload)
            elapsed_ms = int((time.time() - start_time) * 1000)

            if response.status_code != 200:
                error_text = response.text[:500]
                logger.error(f"Gemini API error {response.status_code}: {error_text}")
                return self._failed(ERROR, elapsed_ms, self.model, f"HTTP {response.status_code}: {error_text}")

            data = response.json()
            text, finish_reason = self._extract_text_and_reason(data)
            usage = data.get("usageMetadata", {})

            if finish_reason and finish_reason != "STOP":
                logger.warning(
                    f"Gemini finishReason={finish_reason} (tokens_out={usage.get('candidatesTokenCount', 0)}, "
                    f"text_len={len(text)})"
                )

            return LLMResult(
                status=COMPLETED,
                text=text,
                tokens_in=usage.get("promptTokenCount", 0),
                tokens_out=usage.get("candidatesTokenCount", 0),
                exec_ms=elapsed_ms,
                model_version=data.get("modelVersion", self.model),
                finish_reason=finish_reason,
            )

        except httpx.TimeoutException:
            elapsed_ms = int((time.time() - start_time) * 1000)
            logger.error(f"Gemini API timeout after {elapsed_ms}ms")
            return self._failed(TIMEOUT, elapsed_ms, self.model, "Request timed out")
        except (httpx.HTTPError, ValueError) as e:
            elapsed_ms = int((time.time() - start_time) * 1000)
            logger.error(f"Gemini API error: {e}")
            return self._failed(ERROR, elapsed_ms, self.model, str(e))

    def _extract_text_and_reason(self, response: dict) -> tuple[str, Optional[str]]:
        """Extract text and finishReason from Gemini response."""
        candidates = response.get("candidates", [])
        if not candidates:
            return "", None

        candidate = candidates[0]
        finish_reason = candidate.get("finishReason")
        parts = candidate.get("content", {}).get("parts", [])
        text = "".join(p.get("text", "") for p in parts)
        return text, finish_reason
