"""Abstract base class for upstream text-generation clients."""

from abc import ABC, abstractmethod

import httpx


class GenerationClient(ABC):
    """A client bound to one provider endpoint, one credential and one model.

    Each provider wire protocol (OpenAI-compatible, Google) implements this
    interface so the completion handler never deals with request shapes.
    """

    provider: str  # "google", "openai", "openrouter", "litellm"

    def __init__(
        self,
        api_key: str,
        model_id: str,
        base_url: str,
        timeout: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.model_id = model_id
        self.base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(timeout=httpx.Timeout(timeout, connect=5.0), transport=transport)

    @abstractmethod
    async def generate(
        self, system: str, prompt: str, messages: list[dict] | None = None
    ) -> str:
        """Run one non-streaming generation and return its text."""
        ...

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model_id={self.model_id!r}, base_url={self.base_url!r})"
