"""Persisted API keys and model selection.

Both stores keep their state in a small JSON file. Another process (a second
CLI, another server worker) may rewrite that file at any time; such changes
are picked up by a full re-read, never merged into the in-memory copy.
"""

import asyncio
import json
import logging
import os
import tempfile
from collections.abc import Callable, Mapping
from pathlib import Path

from .config import get_key_policy, get_keys_path, get_selection_path
from .core import PROVIDERS, Credential
from .errors import UnknownModel
from .registry import BASE_URL_HEADERS, HEADER_KEYS, LEGACY_DEFAULT_MODELS, ModelRegistry

logger = logging.getLogger(__name__)

# Order used when the caller has not pinned a provider. Changing it changes
# which key title generation uses.
KEY_PRIORITY = ("google", "openai", "openrouter", "litellm")

DEFAULT_MODEL = "Gemini 2.5 Flash"


class _JsonFileStore:
    """JSON-file backed state with change detection."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._signature: tuple[int, int] | None = None
        self._listeners: list[Callable[[], None]] = []
        self.reload()

    def subscribe(self, callback: Callable[[], None]) -> None:
        """Call ``callback`` after every reload caused by an external change."""
        self._listeners.append(callback)

    def reload(self) -> None:
        """Replace the in-memory state with whatever is on disk."""
        data = self._read()
        self._load(data)
        self._signature = self._stat_signature()

    def refresh_if_changed(self) -> bool:
        """Reload if the backing file changed since we last read or wrote it."""
        signature = self._stat_signature()
        if signature == self._signature:
            return False
        logger.info("Reloading %s after external change", self.path.name)
        self.reload()
        for callback in self._listeners:
            callback()
        return True

    async def watch(self, interval: float = 1.0) -> None:
        """Poll the backing file until cancelled."""
        while True:
            await asyncio.sleep(interval)
            try:
                self.refresh_if_changed()
            except (OSError, ValueError) as e:
                logger.error("Failed to reload %s: %s", self.path, e)

    # ── Subclass hooks ───────────────────────────────────────────────

    def _load(self, data: dict) -> None:
        raise NotImplementedError

    def _dump(self) -> dict:
        raise NotImplementedError

    # ── Private helpers ──────────────────────────────────────────────

    def _stat_signature(self) -> tuple[int, int] | None:
        try:
            st = self.path.stat()
        except FileNotFoundError:
            return None
        return (st.st_mtime_ns, st.st_size)

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._dump(), f, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        self._signature = self._stat_signature()


class CredentialStore(_JsonFileStore):
    """One API key per provider plus the LiteLLM base URL.

    An empty string means the provider has no key; that is a normal state.
    """

    def __init__(self, path: Path | None = None, policy: str | None = None):
        self.policy = policy or get_key_policy()
        self.keys: dict[str, str] = {p: "" for p in PROVIDERS}
        self.base_url = ""
        super().__init__(path or get_keys_path())

    def set_keys(self, new_keys: Mapping[str, str]) -> None:
        unknown = set(new_keys) - set(PROVIDERS)
        if unknown:
            raise ValueError(f"Unknown provider(s): {', '.join(sorted(unknown))}")
        self.keys.update({p: (k or "") for p, k in new_keys.items()})
        self._save()

    def set_base_url(self, url: str) -> None:
        self.base_url = (url or "").strip()
        self._save()

    def clear(self) -> None:
        self.keys = {p: "" for p in PROVIDERS}
        self._save()

    def get_key(self, provider: str) -> str | None:
        key = self.keys.get(provider, "")
        return key if key else None

    def get_first_available_key(self) -> Credential | None:
        for provider in KEY_PRIORITY:
            key = self.get_key(provider)
            if key:
                return Credential(provider=provider, key=key)
        return None

    def has_required_keys(self) -> bool:
        """Whether the chat UI should be usable.

        Policy "none" imposes no requirement; policy "any" needs at least one
        provider key.
        """
        if self.policy == "any":
            return any(self.keys.values())
        return True

    def headers_for(self, credential: Credential) -> dict[str, str]:
        """Request headers that carry ``credential`` to the completion endpoint."""
        headers = {HEADER_KEYS[credential.provider]: credential.key}
        base_url_header = BASE_URL_HEADERS.get(credential.provider)
        if base_url_header and self.base_url:
            headers[base_url_header] = self.base_url
        return headers

    def _load(self, data: dict) -> None:
        stored = data.get("keys") or {}
        self.keys = {p: str(stored.get(p) or "") for p in PROVIDERS}
        self.base_url = str(data.get("base_url") or "")

    def _dump(self) -> dict:
        return {"keys": dict(self.keys), "base_url": self.base_url}


class ModelSelection(_JsonFileStore):
    """The chat model, the title/summary model and LiteLLM custom models."""

    def __init__(self, path: Path | None = None, registry: ModelRegistry | None = None):
        self.registry = registry or ModelRegistry()
        self.selected_model = DEFAULT_MODEL
        self.summary_model = DEFAULT_MODEL
        self.custom_models: list[str] = []
        super().__init__(path or get_selection_path())

    def models(self) -> list[str]:
        return self.registry.names() + list(self.custom_models)

    def set_model(self, name: str) -> None:
        self.registry.resolve(name)
        self.selected_model = name
        self._save()

    def set_summary_model(self, name: str) -> None:
        self.registry.resolve(name)
        self.summary_model = name
        self._save()

    def set_custom_models(self, names: list[str]) -> None:
        self.custom_models = list(names)
        self._save()

    def auto_select(self, store: CredentialStore) -> str:
        """Switch away from a selected model whose provider has no key.

        Picks the first model in table order whose provider has a key. Leaves
        the selection alone when no provider has one.
        """
        if self._has_key(self.selected_model, store):
            return self.selected_model
        for name in self.registry.names():
            if self._has_key(name, store):
                if name != self.selected_model:
                    logger.info("Auto-selecting model %s", name)
                    self.set_model(name)
                break
        return self.selected_model

    def title_model_for(self, store: CredentialStore) -> tuple[str, Credential] | None:
        """Model name and credential to use for title generation, if any."""
        if self._has_key(self.summary_model, store):
            provider = self.registry.resolve(self.summary_model).provider
            return self.summary_model, Credential(provider, store.get_key(provider))
        return legacy_title_model(store)

    def _has_key(self, name: str, store: CredentialStore) -> bool:
        try:
            descriptor = self.registry.resolve(name)
        except UnknownModel:
            return False
        return store.get_key(descriptor.provider) is not None

    def _load(self, data: dict) -> None:
        self.selected_model = data.get("selected_model") or DEFAULT_MODEL
        self.summary_model = data.get("summary_model") or DEFAULT_MODEL
        custom = data.get("custom_models") or []
        self.custom_models = [str(m) for m in custom if m]

    def _dump(self) -> dict:
        return {
            "selected_model": self.selected_model,
            "summary_model": self.summary_model,
            "custom_models": list(self.custom_models),
        }


def legacy_title_model(store: CredentialStore) -> tuple[str, Credential] | None:
    """Model and credential chosen from the first available key alone."""
    credential = store.get_first_available_key()
    if credential is None:
        return None
    model = LEGACY_DEFAULT_MODELS.get(credential.provider)
    if model is None:
        # litellm has no built-in default; it needs a discovered custom model
        return None
    return model, credential
