"""Shared test fixtures for aichat-gateway."""

import json
from unittest.mock import patch

import pytest
from httpx import ASGITransport, AsyncClient

from aichat_gateway.credentials import CredentialStore, ModelSelection
from aichat_gateway.persistence import SQLiteThreadStore
from aichat_gateway.provider import GenerationClient


class FakeClient(GenerationClient):
    """Generation client that answers from memory and records its calls."""

    provider = "fake"

    def __init__(self, reply, error=None, **kwargs):
        super().__init__(**kwargs)
        self.reply = reply
        self.error = error
        self.calls = []

    async def generate(self, system, prompt, messages=None):
        self.calls.append({"system": system, "prompt": prompt, "messages": messages})
        if self.error is not None:
            raise self.error
        return self.reply


class FakeFactory:
    """Stand-in for providers.build_client.

    ``replies`` are handed out in order; the last one repeats.
    """

    def __init__(self, replies=("Fix login bug",), error=None):
        self.replies = list(replies)
        self.error = error
        self.built = []

    def __call__(self, descriptor, credential, base_url=None, timeout=None):
        reply = self.replies[min(len(self.built), len(self.replies) - 1)]
        client = FakeClient(
            reply,
            error=self.error,
            api_key=credential.key,
            model_id=descriptor.upstream_model_id,
            base_url=base_url or "http://upstream.test",
            timeout=timeout or 5,
        )
        self.built.append(
            {"descriptor": descriptor, "credential": credential, "base_url": base_url, "client": client}
        )
        return client


@pytest.fixture(autouse=True)
def reset_service_cache():
    """Reset the completion service cache before each test."""
    import aichat_gateway.server as srv
    srv._service = None
    yield
    srv._service = None


@pytest.fixture
def fake_factory():
    return FakeFactory()


@pytest.fixture
def app_client(fake_factory):
    """An httpx client wired to the FastAPI app with upstream calls faked."""
    from aichat_gateway.server import app

    with patch("aichat_gateway.server.build_client", fake_factory):
        yield AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.fixture
def keys_path(tmp_path):
    return tmp_path / "api-keys.json"


@pytest.fixture
def credential_store(keys_path):
    return CredentialStore(keys_path, policy="none")


@pytest.fixture
def google_store(keys_path):
    """A credential store with only a Google key."""
    keys_path.write_text(json.dumps({"keys": {"google": "AIzaVALID"}, "base_url": ""}), encoding="utf-8")
    return CredentialStore(keys_path, policy="none")


@pytest.fixture
def selection(tmp_path):
    return ModelSelection(tmp_path / "model-store.json")


@pytest.fixture
def thread_store(tmp_path):
    return SQLiteThreadStore(tmp_path / "threads.sqlite3")
