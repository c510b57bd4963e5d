"""LLM Provider abstraction layer supporting multiple providers."""

import logging
from typing import Optional, Dict, Any

import httpx
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from codereview.config import settings
from codereview.database import get_db
from codereview.exceptions import (
    AIAuthError,
    AIMalformedResponseError,
    AITimeoutError,
    AITransportError,
)
from codereview.models import LLMProvider

logger = logging.getLogger(__name__)

PROVIDER_DEFAULT_URLS = {
    "openrouter": "https://openrouter.ai/api/v1",
    "openai": "",
    "anthropic": "",
    "ollama": "http://localhost:11434",
}

KEYLESS_PROVIDERS = {"ollama"}


class LLMProviderService:
    """Sends one review prompt to a provider.

    The service holds no per-call state: every ``complete`` builds its own
    client, headers and body, so concurrent analyses never share auth data.
    """

    # Comprehensive model info: context window, pricing per 1M tokens
    MODEL_INFO = {
        # OpenRouter
        "anthropic/claude-3.5-sonnet": {
            "context": 200000,
            "input_price": 3.00,
            "output_price": 15.00,
            "description": "Best balance of quality and speed for reviews",
            "provider": "openrouter"
        },
        "openai/gpt-4o-mini": {
            "context": 128000,
            "input_price": 0.15,
            "output_price": 0.60,
            "description": "Cheap and fast, good fallback",
            "provider": "openrouter"
        },
        "google/gemini-flash-1.5": {
            "context": 1000000,
            "input_price": 0.075,
            "output_price": 0.30,
            "description": "Huge context for large diffs",
            "provider": "openrouter"
        },
        "meta-llama/llama-3.1-70b-instruct": {
            "context": 131072,
            "input_price": 0.52,
            "output_price": 0.75,
            "description": "Open weights, solid code understanding",
            "provider": "openrouter"
        },
        # OpenAI
        "gpt-4o": {
            "context": 128000,
            "input_price": 2.50,
            "output_price": 10.00,
            "description": "Flagship model, fast & capable",
            "provider": "openai"
        },
        "gpt-4o-mini": {
            "context": 128000,
            "input_price": 0.15,
            "output_price": 0.60,
            "description": "Cheap & fast for simple reviews",
            "provider": "openai"
        },
        # Anthropic
        "claude-3-5-sonnet-20241022": {
            "context": 200000,
            "input_price": 3.00,
            "output_price": 15.00,
            "description": "Latest Sonnet, strong on code",
            "provider": "anthropic"
        },
        "claude-3-5-haiku-20241022": {
            "context": 200000,
            "input_price": 0.80,
            "output_price": 4.00,
            "description": "Fast & cheap",
            "provider": "anthropic"
        },
        # Ollama / Local Models
        "qwen2.5-coder": {
            "context": 32768,
            "input_price": 0,
            "output_price": 0,
            "description": "Local - free, code specialised (Alibaba)",
            "provider": "ollama"
        },
        "llama3.1": {
            "context": 128000,
            "input_price": 0,
            "output_price": 0,
            "description": "Local - free (Meta)",
            "provider": "ollama"
        },
    }

    @classmethod
    def get_available_models(cls, provider: str = None) -> list:
        """Get list of available models with their info."""
        models = []
        for model_id, info in cls.MODEL_INFO.items():
            if provider is None or info["provider"] == provider:
                models.append({
                    "id": model_id,
                    "provider": info["provider"],
                    "context": info["context"],
                    "input_price": info["input_price"],
                    "output_price": info["output_price"],
                    "description": info["description"]
                })
        return models

    @classmethod
    def get_model_info(cls, model: str) -> Optional[Dict[str, Any]]:
        """Get info about a single model, None if unknown."""
        if model not in cls.MODEL_INFO:
            return None
        info = cls.MODEL_INFO[model].copy()
        info["model"] = model
        return info

    def __init__(
        self,
        provider_name: str = "openrouter",
        base_url: str = "",
        temperature: float = None,
        max_tokens: int = None,
        timeout_seconds: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.provider_name = provider_name
        self.base_url = (base_url or PROVIDER_DEFAULT_URLS.get(provider_name, "")).rstrip("/")
        self.temperature = settings.ai_temperature if temperature is None else temperature
        self.max_tokens = settings.ai_max_tokens if max_tokens is None else max_tokens
        self.timeout_seconds = settings.ai_timeout_seconds if timeout_seconds is None else timeout_seconds
        self._transport = transport

    @property
    def requires_api_key(self) -> bool:
        return self.provider_name not in KEYLESS_PROVIDERS

    async def test_connection(self, model: str, api_key: str) -> Dict:
        """Test connection to the provider with a trivial prompt."""
        response = await self.complete(
            "You are a connectivity check.",
            "Reply with: OK",
            model,
            api_key,
        )
        return {
            "provider": self.provider_name,
            "model": model,
            "response": response
        }

    async def complete(self, system_prompt: str, prompt: str, model: str, api_key: str) -> str:
        """Send a completion request and return the response text."""
        if self.requires_api_key and not api_key:
            raise AIAuthError("API key not configured")
        if not model:
            raise AIMalformedResponseError("No model configured")

        logger.info(f"[AI] {self.provider_name} request, model={model}, prompt={len(prompt)} chars")

        if self.provider_name == "openrouter":
            text = await self._complete_openrouter(system_prompt, prompt, model, api_key)
        elif self.provider_name == "openai":
            text = await self._complete_openai(system_prompt, prompt, model, api_key)
        elif self.provider_name == "anthropic":
            text = await self._complete_anthropic(system_prompt, prompt, model, api_key)
        elif self.provider_name == "ollama":
            text = await self._complete_ollama(system_prompt, prompt, model)
        else:
            raise ValueError(f"Unknown provider: {self.provider_name}")

        if not text or not text.strip():
            raise AIMalformedResponseError(f"Empty response from {self.provider_name}")
        logger.info(f"[AI] {self.provider_name} answered, {len(text)} chars")
        return text

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport)

    async def _post_json(self, url: str, headers: Dict[str, str], body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.post(url, headers=headers, json=body)
        except httpx.TimeoutException as e:
            raise AITimeoutError(f"Request to {self.provider_name} timed out") from e
        except httpx.HTTPError as e:
            raise AITransportError(f"Connection to {self.provider_name} failed: {e}") from e

        if response.status_code in (401, 403):
            raise AIAuthError(
                f"{self.provider_name} rejected the API key (HTTP {response.status_code})",
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            raise AITransportError(
                f"{self.provider_name} returned HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise AIMalformedResponseError(f"{self.provider_name} returned invalid JSON") from e

    async def _complete_openrouter(self, system_prompt: str, prompt: str, model: str, api_key: str) -> str:
        """Complete using the OpenRouter chat completions API."""
        headers = {
            "Authorization": f"Bearer {api_key}",
            "HTTP-Referer": "https://github.com/ai-code-reviewer",
            "X-Title": settings.app_name,
        }
        body = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt}
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        result = await self._post_json(f"{self.base_url}/chat/completions", headers, body)
        try:
            return result["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise AIMalformedResponseError("Unexpected response shape from openrouter") from e

    async def _complete_openai(self, system_prompt: str, prompt: str, model: str, api_key: str) -> str:
        """Complete using OpenAI API."""
        import openai
        from openai import AsyncOpenAI

        client = AsyncOpenAI(
            api_key=api_key,
            base_url=self.base_url or None,
            timeout=self.timeout_seconds,
            max_retries=0,
        )
        try:
            response = await client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt}
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens
            )
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            raise AIAuthError(f"openai rejected the API key: {e}") from e
        except openai.APITimeoutError as e:
            raise AITimeoutError("Request to openai timed out") from e
        except openai.APIConnectionError as e:
            raise AITransportError(f"Connection to openai failed: {e}") from e
        except openai.APIStatusError as e:
            raise AITransportError(f"openai returned HTTP {e.status_code}", status_code=e.status_code) from e
        finally:
            await client.close()

        if not response.choices:
            raise AIMalformedResponseError("openai returned no choices")
        return response.choices[0].message.content

    async def _complete_anthropic(self, system_prompt: str, prompt: str, model: str, api_key: str) -> str:
        """Complete using Anthropic API."""
        import anthropic
        from anthropic import AsyncAnthropic

        client = AsyncAnthropic(api_key=api_key, timeout=self.timeout_seconds, max_retries=0)
        try:
            response = await client.messages.create(
                model=model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=system_prompt,
                messages=[
                    {"role": "user", "content": prompt}
                ]
            )
        except (anthropic.AuthenticationError, anthropic.PermissionDeniedError) as e:
            raise AIAuthError(f"anthropic rejected the API key: {e}") from e
        except anthropic.APITimeoutError as e:
            raise AITimeoutError("Request to anthropic timed out") from e
        except anthropic.APIConnectionError as e:
            raise AITransportError(f"Connection to anthropic failed: {e}") from e
        except anthropic.APIStatusError as e:
            raise AITransportError(f"anthropic returned HTTP {e.status_code}", status_code=e.status_code) from e
        finally:
            await client.close()

        texts = [block.text for block in response.content if getattr(block, "type", "") == "text"]
        if not texts:
            raise AIMalformedResponseError("anthropic returned no text content")
        return "".join(texts)

    async def _complete_ollama(self, system_prompt: str, prompt: str, model: str) -> str:
        """Complete using local Ollama."""
        body = {
            "model": model,
            "system": system_prompt,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": self.temperature
            }
        }
        result = await self._post_json(f"{self.base_url}/api/generate", {}, body)
        if not isinstance(result, dict):
            raise AIMalformedResponseError("Unexpected response shape from ollama")
        return result.get("response", "")


async def get_active_provider(db: AsyncSession) -> Optional[LLMProvider]:
    result = await db.execute(
        select(LLMProvider).where(LLMProvider.is_active == True)  # noqa: E712
    )
    return result.scalars().first()


def env_base_url() -> str:
    # The env base URL defaults to OpenRouter; other providers keep their own default
    base_url = settings.ai_base_url
    if settings.ai_provider != "openrouter" and base_url == PROVIDER_DEFAULT_URLS["openrouter"]:
        return PROVIDER_DEFAULT_URLS.get(settings.ai_provider, "")
    return base_url


def service_for(provider: Optional[LLMProvider]) -> LLMProviderService:
    """Build a service for a provider row, or from environment settings."""
    if provider is None:
        return LLMProviderService(settings.ai_provider, env_base_url())
    return LLMProviderService(provider.name, provider.api_base_url or "")


async def get_llm_service(db: AsyncSession = Depends(get_db)) -> LLMProviderService:
    """Dependency to get LLM service for the active provider."""
    return service_for(await get_active_provider(db))
