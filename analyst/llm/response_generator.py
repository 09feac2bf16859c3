"""
Alex response generation: prompt composition, model call, template fallback.

The model path is taken only when a gateway is configured and returns usable
text. Anything else (missing gateway, exception, ERROR/TIMEOUT, empty text,
SAFETY stop) routes to FallbackGenerator.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from analyst.config import Settings, get_settings
from analyst.conversation.store import ConversationTurn
from analyst.etl.targeted_fetch import TargetedDataBundle
from analyst.llm.context_formatter import ContextFormatter
from analyst.llm.fallback import FallbackGenerator
from analyst.llm.gateway import ChatPrompt, LLMResult, ModelGateway
from analyst.llm.need_detector import Intent, classify_intent, detect_needs
from analyst.match_context import MatchContext, MatchMode
from analyst.telemetry import record_answer, record_llm_request

logger = logging.getLogger(__name__)

SYSTEM_PROMPTS = {
    MatchMode.PRE_MATCH: """You are Alex, an elite football analyst and former professional scout with 20+ years of experience.

Your expertise: tactical analysis (formations, pressing systems, build-up patterns), player evaluation, match prediction from form and historical patterns, and the major European leagues.

RULES:
1. Provide specific, detailed analysis, never generic statements
2. Use the MATCH DATA provided and quote actual numbers ("2.3 goals per home game", not "scoring well")
3. When predicting, give a concrete scoreline with clear reasoning
4. Deliver the analysis directly; do not ask follow-up questions
5. Use bullet points and bold text for readability
6. If a data section is missing, say so briefly rather than inventing figures""",
    MatchMode.LIVE: """You are Alex, an elite football analyst watching a LIVE match with fans.

Your style: react to events like a passionate expert watching with friends. Explain why things happen, not just what happened, and suggest what might happen next.

Focus on tactical adjustments and their impact, player performances and matchups, key moments and turning points, and live predictions based on match flow. Use the MATCH DATA provided; never invent events or scores.""",
    MatchMode.POST_MATCH: """You are Alex, an elite football analyst providing post-match analysis.

Cover the decisive moments, player performances with specific ratings out of 10, what worked tactically and what failed, the key statistics from the MATCH DATA provided, and what the result means for both teams going forward.

Be thorough and specific; fans want deep insights, not surface-level takes.""",
}


@dataclass
class GeneratedAnswer:
    text: str
    used_fallback: bool
    intent: Intent


def build_context_message(match: MatchContext, data_context: str, insights_text: str) -> str:
    """The single context message: match summary, fetched data, learned insights."""
    parts = ["MATCH DATA FOR ANALYSIS", match.describe()]
    if data_context:
        parts.append(data_context)
    else:
        parts.append("No live data could be retrieved for this question.")
    if insights_text:
        parts.append(insights_text)
    return "\n\n".join(parts)


class ResponseGenerator:
    def __init__(
        self,
        gateway: Optional[ModelGateway],
        formatter: Optional[ContextFormatter] = None,
        fallback: Optional[FallbackGenerator] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.gateway = gateway
        self.formatter = formatter or ContextFormatter(self.settings.ANALYST_CONTEXT_CHAR_BUDGET)
        self.fallback = fallback or FallbackGenerator(
            formatter=self.formatter, jitter=self.settings.ANALYST_PREDICTION_JITTER
        )

    def build_prompt(
        self,
        question: str,
        match: MatchContext,
        bundle: TargetedDataBundle,
        history: list[ConversationTurn],
        insights_text: str = "",
    ) -> ChatPrompt:
        system = SYSTEM_PROMPTS.get(match.mode, SYSTEM_PROMPTS[MatchMode.PRE_MATCH])
        data_context = self.formatter.format(bundle, match)
        return ChatPrompt(
            system=system,
            context=build_context_message(match, data_context, insights_text),
            question=question,
            history=list(history),
        )

    async def generate(
        self,
        question: str,
        match: MatchContext,
        bundle: TargetedDataBundle,
        history: list[ConversationTurn],
        insights_text: str = "",
        tags: Optional[frozenset[str]] = None,
    ) -> GeneratedAnswer:
        if tags is None:
            tags = detect_needs(question)
        intent = classify_intent(question, tags)

        text = await self._call_model(question, match, bundle, history, insights_text)
        if text is not None:
            record_answer("model", intent.value)
            return GeneratedAnswer(text=text, used_fallback=False, intent=intent)

        text, intent = self.fallback.generate(question, tags, match, bundle)
        record_answer("fallback", intent.value)
        return GeneratedAnswer(text=text, used_fallback=True, intent=intent)

    async def _call_model(
        self,
        question: str,
        match: MatchContext,
        bundle: TargetedDataBundle,
        history: list[ConversationTurn],
        insights_text: str,
    ) -> Optional[str]:
        """Model text, or None when the fallback should answer instead."""
        if self.gateway is None:
            logger.info("[ALEX] No model gateway configured, using fallback")
            return None

        prompt = self.build_prompt(question, match, bundle, history, insights_text)
        provider = getattr(self.gateway, "provider", "unknown")
        start = time.time()
        try:
            result: LLMResult = await self.gateway.complete(
                prompt,
                max_tokens=self.settings.ANALYST_LLM_MAX_TOKENS,
                temperature=self.settings.ANALYST_LLM_TEMPERATURE,
            )
        except Exception as e:
            elapsed_ms = (time.time() - start) * 1000
            record_llm_request(provider, "EXCEPTION", elapsed_ms)
            logger.warning(f"[ALEX] Model call failed for {match.pair_key}: {e}")
            return None

        record_llm_request(provider, result.status, result.exec_ms, result.tokens_in, result.tokens_out)

        if not result.usable:
            logger.warning(
                f"[ALEX] Unusable model result for {match.pair_key}: status={result.status} "
                f"finish_reason={result.finish_reason} error={result.error}"
            )
            return None

        logger.info(
            f"[ALEX] Model answer for {match.pair_key} "
            f"({result.tokens_in}/{result.tokens_out} tokens, {result.exec_ms}ms)"
        )
        return result.text.strip()
