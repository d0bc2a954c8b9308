"""Out-of-band API key validation against each provider's own API.

Every check is a read-only listing call. Failures of any kind come back as
a ``ValidationResult``; nothing here raises.
"""

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Optional

import httpx

from .core import PROVIDER_LABELS
from .providers.openai_compat import litellm_api_base

logger = logging.getLogger(__name__)

VALIDATION_TIMEOUT = 10.0


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"isValid": self.is_valid}
        if self.error:
            data["error"] = self.error
        return data


class CredentialValidationService:
    """Checks provider keys concurrently without letting one failure block another."""

    def __init__(
        self,
        base_url: str = "",
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = VALIDATION_TIMEOUT,
    ):
        self.base_url = base_url  # LiteLLM deployment, if any
        self._transport = transport
        self._timeout = timeout

    async def validate(self, provider: str, key: str) -> ValidationResult:
        if not key or not key.strip():
            return ValidationResult(False, "API key is required")

        request = self._build_request(provider, key.strip())
        if request is None:
            if provider == "litellm":
                return ValidationResult(False, "LiteLLM base URL is required")
            return ValidationResult(False, "Unknown provider")

        label = PROVIDER_LABELS[provider]
        method, url, kwargs = request
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error("Validation request for %s failed: %s", provider, type(e).__name__)
            return ValidationResult(False, f"Unable to validate {label} key")

        if resp.is_success:
            return ValidationResult(True)
        return ValidationResult(False, f"{label} key not valid")

    async def validate_many(self, keys: Mapping[str, str]) -> dict[str, ValidationResult]:
        """Validate several providers at once; returns when every check has settled."""
        providers = list(keys)
        results = await asyncio.gather(
            *(self.validate(p, keys[p]) for p in providers), return_exceptions=True
        )
        settled = {}
        for provider, result in zip(providers, results):
            if isinstance(result, BaseException):
                logger.error("Validation for %s raised %r", provider, result)
                result = ValidationResult(False, "Unable to validate key")
            settled[provider] = result
        return settled

    async def fetch_custom_models(self, api_key: str = "") -> list[str]:
        """Return the model ids a LiteLLM proxy advertises, or [] on any failure."""
        if not self.base_url:
            return []
        url = f"{litellm_api_base(self.base_url)}/models"
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.get(url, headers=headers)
            if resp.is_error:
                logger.error("Failed to fetch LiteLLM models: HTTP %s", resp.status_code)
                return []
            data = resp.json().get("data")
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.error("Error fetching LiteLLM models: %s", e)
            return []
        if not isinstance(data, list):
            return []
        return [m["id"] for m in data if isinstance(m, dict) and m.get("id")]

    # ── Private helpers ──────────────────────────────────────────────

    def _build_request(self, provider: str, key: str):
        bearer = {"headers": {"Authorization": f"Bearer {key}"}}
        if provider == "openai":
            return "GET", "https://api.openai.com/v1/models", bearer
        if provider == "google":
            return "GET", "https://generativelanguage.googleapis.com/v1/models", {"headers": {"x-goog-api-key": key}}
        if provider == "openrouter":
            return "GET", "https://openrouter.ai/api/v1/auth/key", bearer
        if provider == "litellm" and self.base_url:
            return "GET", f"{litellm_api_base(self.base_url)}/models", bearer
        return None
