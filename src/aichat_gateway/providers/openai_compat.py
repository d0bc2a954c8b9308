"""OpenAI-compatible chat/completions client.

Serves OpenAI itself, OpenRouter, and LiteLLM proxies. LiteLLM speaks the
OpenAI wire format, so it only differs in its base URL.
"""

import logging

import httpx

from ..errors import UpstreamGenerationFailure
from ..provider import GenerationClient

logger = logging.getLogger(__name__)

OPENAI_BASE_URL = "https://api.openai.com/v1"
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class OpenAICompatibleClient(GenerationClient):
    """Client for any endpoint exposing ``POST /chat/completions``."""

    provider = "openai"

    async def generate(
        self, system: str, prompt: str, messages: list[dict] | None = None
    ) -> str:
        payload = {
            "model": self.model_id,
            "messages": _build_messages(system, prompt, messages),
            "stream": False,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        try:
            resp = await self._http.post(f"{self.base_url}/chat/completions", json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise UpstreamGenerationFailure(f"{self.provider} request failed: {e!r}") from e

        if resp.is_error:
            raise UpstreamGenerationFailure(f"{self.provider} returned HTTP {resp.status_code}")

        try:
            data = resp.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise UpstreamGenerationFailure(f"{self.provider} returned an unexpected body") from e
        return (content or "").strip()


class OpenRouterClient(OpenAICompatibleClient):
    provider = "openrouter"


class LiteLLMClient(OpenAICompatibleClient):
    provider = "litellm"


def litellm_api_base(base_url: str) -> str:
    """Normalize a LiteLLM deployment URL to its ``/v1`` API root."""
    base = base_url.rstrip("/")
    return base if base.endswith("/v1") else f"{base}/v1"


def _build_messages(system: str, prompt: str, messages: list[dict] | None) -> list[dict]:
    result = [{"role": "system", "content": system}]
    for msg in messages or []:
        role = msg.get("role")
        content = msg.get("content")
        if role in ("user", "assistant") and isinstance(content, str):
            result.append({"role": role, "content": content})
    result.append({"role": "user", "content": prompt})
    return result
