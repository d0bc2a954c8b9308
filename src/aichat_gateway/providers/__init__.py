"""Provider client factories and the gateway that picks between them."""

import logging
from collections.abc import Callable

import httpx

from ..config import get_generation_timeout
from ..core import Credential, ModelDescriptor
from ..errors import MissingCredential, UnsupportedProvider
from ..provider import GenerationClient
from ..registry import BASE_URL_HEADERS
from .google import GOOGLE_BASE_URL, GoogleClient
from .openai_compat import (
    OPENAI_BASE_URL,
    OPENROUTER_BASE_URL,
    LiteLLMClient,
    OpenAICompatibleClient,
    OpenRouterClient,
    litellm_api_base,
)

logger = logging.getLogger(__name__)

# provider -> (client class, default base URL or None when one must be supplied)
CLIENT_FACTORIES: dict[str, tuple[type[GenerationClient], str | None]] = {
    "google": (GoogleClient, GOOGLE_BASE_URL),
    "openai": (OpenAICompatibleClient, OPENAI_BASE_URL),
    "openrouter": (OpenRouterClient, OPENROUTER_BASE_URL),
    "litellm": (LiteLLMClient, None),
}

# Only providers with a base-URL request header may have their endpoint replaced
BASE_URL_OVERRIDABLE = frozenset(BASE_URL_HEADERS)

ClientFactory = Callable[..., GenerationClient]


def build_client(
    descriptor: ModelDescriptor,
    credential: Credential,
    base_url: str | None = None,
    timeout: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> GenerationClient:
    """Return a client bound to ``descriptor.upstream_model_id``.

    Raises UnsupportedProvider when the registry names a provider with no
    factory here, and MissingCredential when a provider that has no public
    endpoint (LiteLLM) is used without a base URL.
    """
    factory = CLIENT_FACTORIES.get(descriptor.provider)
    if factory is None:
        raise UnsupportedProvider(descriptor.provider)
    client_cls, default_base = factory

    if base_url and descriptor.provider in BASE_URL_OVERRIDABLE:
        endpoint = base_url
    else:
        if base_url:
            logger.warning("Ignoring base URL override for provider %s", descriptor.provider)
        endpoint = default_base

    if not endpoint:
        raise MissingCredential(BASE_URL_HEADERS.get(descriptor.provider))
    if descriptor.provider == "litellm":
        endpoint = litellm_api_base(endpoint)

    return client_cls(
        api_key=credential.key,
        model_id=descriptor.upstream_model_id,
        base_url=endpoint,
        timeout=timeout or get_generation_timeout(),
        transport=transport,
    )


def supported_providers() -> list[str]:
    return list(CLIENT_FACTORIES)
