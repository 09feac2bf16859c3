"""
Model gateway: one async interface over the hosted LLM providers.

Providers return an LLMResult instead of raising for HTTP/timeout failures,
so the caller decides on fallback from `status` alone. GatewayError is
reserved for misconfiguration.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

import httpx

from analyst.config import Settings, get_settings
from analyst.conversation.store import ConversationTurn

logger = logging.getLogger(__name__)

COMPLETED = "COMPLETED"
ERROR = "ERROR"
TIMEOUT = "TIMEOUT"


@dataclass
class ChatPrompt:
    """Everything sent to the model for one answer."""

    system: str
    context: str
    question: str
    history: list[ConversationTurn] = field(default_factory=list)

    @property
    def instructions(self) -> str:
        if not self.context:
            return self.system
        return f"{self.system}\n\n{self.context}"

    def to_messages(self) -> list[dict]:
        """OpenAI-style message list: system, prior turns, then the question."""
        messages = [{"role": "system", "content": self.instructions}]
        messages.extend({"role": t.role, "content": t.content} for t in self.history)
        messages.append({"role": "user", "content": self.question})
        return messages


@dataclass
class LLMResult:
    """Result from a provider call."""

    status: str  # COMPLETED, ERROR, TIMEOUT
    text: str
    tokens_in: int
    tokens_out: int
    exec_ms: int
    model_version: str
    error: Optional[str] = None
    finish_reason: Optional[str] = None  # STOP, MAX_TOKENS, SAFETY, ...

    @property
    def usable(self) -> bool:
        return (
            self.status == COMPLETED
            and bool(self.text.strip())
            and (self.finish_reason or "").upper() != "SAFETY"
        )


class GatewayError(Exception):
    """Provider misconfigured (e.g. missing API key)."""

    pass


class ModelGateway(ABC):
    """Base for provider clients: shared settings and a lazily created httpx client."""

    provider = "base"

    def __init__(self, settings: Optional[Settings] = None, client: Optional[httpx.AsyncClient] = None):
        settings = settings or get_settings()
        self.timeout = settings.ANALYST_LLM_TIMEOUT_SECONDS
        self.max_tokens = settings.ANALYST_LLM_MAX_TOKENS
        self.temperature = settings.ANALYST_LLM_TEMPERATURE
        self.top_p = settings.ANALYST_LLM_TOP_P
        self._client = client

    def _headers(self) -> dict:
        return {"Content-Type": "application/json"}

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers=self._headers(),
            )
        return self._client

    async def close(self):
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _failed(self, status: str, elapsed_ms: int, model: str, error: str) -> LLMResult:
        return LLMResult(
            status=status,
            text="",
            tokens_in=0,
            tokens_out=0,
            exec_ms=elapsed_ms,
            model_version=model,
            error=error,
        )

    @abstractmethod
    async def complete(
        self,
        prompt: ChatPrompt,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> LLMResult:
        pass


def get_model_gateway(settings: Optional[Settings] = None) -> Optional[ModelGateway]:
    """
    Build the configured provider client.

    Returns None when the selected provider has no API key, which callers
    treat as "model unavailable".
    """
    settings = settings or get_settings()
    provider = (settings.ANALYST_LLM_PROVIDER or "").strip().lower()

    if provider == "gemini":
        if not settings.GEMINI_API_KEY.strip():
            logger.warning("[LLM] GEMINI_API_KEY not configured, answers will use fallback")
            return None
        from analyst.llm.gemini_client import GeminiClient
        return GeminiClient(settings)

    if provider == "openai":
        if not settings.OPENAI_API_KEY.strip():
            logger.warning("[LLM] OPENAI_API_KEY not configured, answers will use fallback")
            return None
        from analyst.llm.openai_client import OpenAIClient
        return OpenAIClient(settings)

    logger.warning(f"[LLM] Unknown ANALYST_LLM_PROVIDER={provider!r}, answers will use fallback")
    return None
