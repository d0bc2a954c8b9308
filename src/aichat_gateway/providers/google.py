"""Google Gemini client using the generateContent REST endpoint."""

import httpx

from ..errors import UpstreamGenerationFailure
from ..provider import GenerationClient

GOOGLE_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class GoogleClient(GenerationClient):
    """Client for ``POST /models/{model}:generateContent``."""

    provider = "google"

    async def generate(
        self, system: str, prompt: str, messages: list[dict] | None = None
    ) -> str:
        contents = []
        for msg in messages or []:
            content = msg.get("content")
            if not isinstance(content, str):
                continue
            role = "model" if msg.get("role") == "assistant" else "user"
            contents.append({"role": role, "parts": [{"text": content}]})
        contents.append({"role": "user", "parts": [{"text": prompt}]})

        payload = {
            "systemInstruction": {"parts": [{"text": system}]},
            "contents": contents,
        }
        url = f"{self.base_url}/models/{self.model_id}:generateContent"

        try:
            resp = await self._http.post(url, json=payload, headers={"x-goog-api-key": self.api_key})
        except httpx.HTTPError as e:
            raise UpstreamGenerationFailure(f"google request failed: {e!r}") from e

        if resp.is_error:
            raise UpstreamGenerationFailure(f"google returned HTTP {resp.status_code}")

        try:
            candidate = resp.json()["candidates"][0]
            parts = candidate["content"]["parts"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise UpstreamGenerationFailure("google returned an unexpected body") from e

        return "".join(p.get("text", "") for p in parts if isinstance(p, dict)).strip()
