"""Calls the AI provider with a timeout and a single fallback model."""

import asyncio
import logging
from typing import List, NamedTuple, Optional

from codereview.config import settings
from codereview.exceptions import AIProviderError, AITimeoutError
from codereview.prompts.default_prompts import build_review_prompt, build_system_prompt
from codereview.services.llm_provider import LLMProviderService

logger = logging.getLogger(__name__)


class AIAnalysisOutcome(NamedTuple):
    analysis: Optional[str]
    error: bool
    error_message: Optional[str]
    model_used: Optional[str]


class AIAnalysisOrchestrator:
    def __init__(self, provider: LLMProviderService, timeout_seconds: float = None):
        self.provider = provider
        self.timeout_seconds = settings.ai_timeout_seconds if timeout_seconds is None else timeout_seconds

    async def analyze(
        self,
        content: str,
        documents: List[str],
        requirements: str,
        api_key: str,
        primary_model: str,
        fallback_model: Optional[str] = None,
        language: str = "NET",
        is_file_content: bool = False,
    ) -> AIAnalysisOutcome:
        """Review ``content`` and return the outcome; never raises for provider failures.

        The fallback model gets one attempt when it is configured, differs from
        the primary and the primary failed with a retryable error.
        """
        if not content or not content.strip():
            message = "No file content to analyze" if is_file_content else "No code changes to analyze"
            return AIAnalysisOutcome(None, True, message, primary_model)

        system_prompt = build_system_prompt(language)
        prompt = build_review_prompt(content, documents, requirements, language, is_file_content)

        try:
            text = await self._attempt(system_prompt, prompt, primary_model, api_key)
            return AIAnalysisOutcome(text, False, None, primary_model)
        except AIProviderError as e:
            failure = e
        except Exception as e:
            logger.exception(f"[AI] Unexpected failure calling {primary_model}")
            return AIAnalysisOutcome(None, True, f"AI analysis failed: {e}", primary_model)

        can_fall_back = bool(fallback_model) and fallback_model != primary_model
        if not (failure.retryable and can_fall_back):
            logger.warning(f"[AI] {primary_model} failed, no retry: {failure.message}")
            return self._failed(failure, primary_model)

        logger.warning(f"[AI] {primary_model} failed ({failure.message}), retrying with {fallback_model}")
        try:
            text = await self._attempt(system_prompt, prompt, fallback_model, api_key)
            return AIAnalysisOutcome(text, False, None, fallback_model)
        except AIProviderError as e:
            logger.error(f"[AI] Fallback {fallback_model} failed too: {e.message}")
            return self._failed(e, fallback_model)
        except Exception as e:
            logger.exception(f"[AI] Unexpected failure calling fallback {fallback_model}")
            return AIAnalysisOutcome(None, True, f"AI analysis failed: {e}", fallback_model)

    async def _attempt(self, system_prompt: str, prompt: str, model: str, api_key: str) -> str:
        try:
            return await asyncio.wait_for(
                self.provider.complete(system_prompt, prompt, model, api_key),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise AITimeoutError(self._timeout_message()) from e

    def _timeout_message(self) -> str:
        seconds = self.timeout_seconds
        shown = int(seconds) if float(seconds).is_integer() else seconds
        return f"AI analysis timed out after {shown} seconds"

    def _failed(self, error: AIProviderError, model: str) -> AIAnalysisOutcome:
        if isinstance(error, AITimeoutError):
            message = error.message
        else:
            message = f"AI analysis failed: {error.message}"
        return AIAnalysisOutcome(None, True, message, model)
