"""Static model table and the lookups built on it.

The table is the only place an upstream model id may appear. Adding a model
means adding one row to ``MODEL_CONFIGS``.
"""

from collections.abc import Mapping

from .core import ModelDescriptor
from .errors import MissingCredential, UnknownModel

HEADER_KEYS = {
    "google": "X-Google-API-Key",
    "openrouter": "X-OpenRouter-API-Key",
    "openai": "X-OpenAI-API-Key",
    "litellm": "X-LiteLLM-API-Key",
}

BASE_URL_HEADERS = {
    "litellm": "X-LiteLLM-Base-Url",
}

# Prefix for models discovered at runtime from a LiteLLM proxy
CUSTOM_MODEL_PREFIX = "litellm/"


def _descriptor(name: str, model_id: str, provider: str) -> ModelDescriptor:
    return ModelDescriptor(
        logical_name=name,
        upstream_model_id=model_id,
        provider=provider,
        credential_header=HEADER_KEYS[provider],
    )


_ROWS = [
    _descriptor("Deepseek R1 0528", "deepseek/deepseek-r1-0528:free", "openrouter"),
    _descriptor("Deepseek V3", "deepseek/deepseek-chat-v3-0324:free", "openrouter"),
    _descriptor("Gemini 2.5 Pro", "gemini-2.5-pro-preview-05-06", "google"),
    _descriptor("Gemini 2.5 Flash", "gemini-2.5-flash-preview-04-17", "google"),
    _descriptor("GPT-4o", "gpt-4o", "openai"),
    _descriptor("GPT-4.1-mini", "gpt-4.1-mini", "openai"),
]


def _index(rows: list[ModelDescriptor]) -> dict[str, ModelDescriptor]:
    configs = {}
    for row in rows:
        if row.logical_name in configs:
            raise ValueError(f"duplicate logical model name: {row.logical_name}")
        configs[row.logical_name] = row
    return configs


MODEL_CONFIGS: dict[str, ModelDescriptor] = _index(_ROWS)

# Requests that predate explicit model selection pick a provider by which
# credential header is present, checked in this order.
LEGACY_HEADER_ORDER = ("google", "openai", "openrouter")

LEGACY_DEFAULT_MODELS = {
    "google": "Gemini 2.5 Flash",
    "openai": "GPT-4.1-mini",
    "openrouter": "Deepseek V3",
}


class ModelRegistry:
    """Resolves logical model names to descriptors."""

    def __init__(self, configs: Mapping[str, ModelDescriptor] | None = None):
        self._configs = dict(MODEL_CONFIGS if configs is None else configs)

    def names(self) -> list[str]:
        return list(self._configs)

    def descriptors(self) -> list[ModelDescriptor]:
        return list(self._configs.values())

    def resolve(self, name: str) -> ModelDescriptor:
        descriptor = self._configs.get(name)
        if descriptor is not None:
            return descriptor
        if name.startswith(CUSTOM_MODEL_PREFIX) and len(name) > len(CUSTOM_MODEL_PREFIX):
            return custom_descriptor(name[len(CUSTOM_MODEL_PREFIX):])
        raise UnknownModel(name)

    def __contains__(self, name: str) -> bool:
        try:
            self.resolve(name)
        except UnknownModel:
            return False
        return True


def custom_descriptor(model_id: str) -> ModelDescriptor:
    """Descriptor for a model served by the LiteLLM proxy."""
    return _descriptor(CUSTOM_MODEL_PREFIX + model_id, model_id, "litellm")


def legacy_descriptor_for_headers(
    headers: Mapping[str, str], registry: ModelRegistry | None = None
) -> ModelDescriptor:
    """Pick a descriptor for a request that names no model.

    The first provider in ``LEGACY_HEADER_ORDER`` whose credential header is
    present and non-empty wins. ``headers`` should be case-insensitive
    (Starlette and httpx header objects both are).
    """
    registry = registry or ModelRegistry()
    for provider in LEGACY_HEADER_ORDER:
        if headers.get(HEADER_KEYS[provider]):
            return registry.resolve(LEGACY_DEFAULT_MODELS[provider])
    raise MissingCredential()
