"""Core data models for aichat-gateway."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

# Providers in declaration order; credential lookup priority lives in credentials.py
PROVIDERS = ("google", "openrouter", "openai", "litellm")

PROVIDER_LABELS = {
    "google": "Google",
    "openrouter": "OpenRouter",
    "openai": "OpenAI",
    "litellm": "LiteLLM",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class ModelDescriptor:
    """How a user-facing model name maps onto an upstream provider."""

    logical_name: str  # e.g. "Gemini 2.5 Flash"
    upstream_model_id: str  # e.g. "gemini-2.5-flash-preview-04-17"
    provider: str  # one of PROVIDERS
    credential_header: str  # e.g. "X-Google-API-Key"


@dataclass(frozen=True)
class Credential:
    """An API key for one provider."""

    provider: str
    key: str

    def __repr__(self) -> str:
        return f"Credential(provider={self.provider!r}, key='***')"


@dataclass
class Message:
    """A single chat message within a thread."""

    thread_id: str
    role: str  # "user" | "assistant"
    content: str
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Thread:
    """A conversation and its ordered messages."""

    id: str
    title: Optional[str] = None
    messages: list[Message] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class MessageSummary:
    """A generated summary (or title) recorded against a message."""

    thread_id: str
    message_id: str
    content: str
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)


class TitleJobState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class TitleJob:
    """Outcome of one title-generation attempt. Never persisted."""

    thread_id: str
    message_id: str
    state: TitleJobState = TitleJobState.IDLE
    title: Optional[str] = None
    error: Optional[str] = None
