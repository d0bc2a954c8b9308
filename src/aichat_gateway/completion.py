"""Completion request handling: resolve, authenticate, dispatch, shape.

The service is stateless across requests. It never forwards upstream error
text to the caller; the cause goes to the log and the caller gets a fixed
message.
"""

import asyncio
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .config import get_generation_timeout
from .core import Credential, ModelDescriptor
from .errors import MissingCredential, UpstreamGenerationFailure
from .providers import ClientFactory, build_client
from .registry import BASE_URL_HEADERS, ModelRegistry, legacy_descriptor_for_headers

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 80
FALLBACK_TITLE = "New Chat"

TITLE_SYSTEM_PROMPT = """
- you will generate a short title based on the first message a user begins a conversation with
- ensure it is not more than 80 characters long
- the title should be a summary of the user's message
- you should NOT answer the user's message, you should only generate a summary/title
- do not use quotes or colons"""

SUMMARY_SYSTEM_PROMPT = """
- you will generate a short summary of the user's message
- ensure it is not more than 80 characters long
- you should NOT answer the user's message, you should only summarize it
- do not use quotes or colons"""

_FORBIDDEN_TITLE_CHARS = re.compile(r"[\"'`:“”‘’：]")
_WHITESPACE = re.compile(r"\s+")


class CompletionRequest(BaseModel):
    """Body of ``POST /api/completion``."""

    model_config = ConfigDict(populate_by_name=True)

    model: Optional[str] = None
    prompt: str
    messages: Optional[list[dict]] = None
    is_title: Optional[bool] = Field(None, alias="isTitle")
    message_id: Optional[str] = Field(None, alias="messageId")
    thread_id: Optional[str] = Field(None, alias="threadId")


@dataclass
class CompletionResult:
    text: str
    is_title: Optional[bool] = None
    message_id: Optional[str] = None
    thread_id: Optional[str] = None
    model: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"title" if self.is_title else "result": self.text}
        if self.is_title is not None:
            data["isTitle"] = self.is_title
        if self.message_id is not None:
            data["messageId"] = self.message_id
        if self.thread_id is not None:
            data["threadId"] = self.thread_id
        return data


def clean_title(text: str) -> str:
    """Force a model's answer into title shape: no quotes or colons, at most 80 chars."""
    title = _FORBIDDEN_TITLE_CHARS.sub("", text or "")
    title = _WHITESPACE.sub(" ", title).strip()
    if len(title) > MAX_TITLE_LENGTH:
        title = title[:MAX_TITLE_LENGTH].rstrip()
    return title or FALLBACK_TITLE


class CompletionService:
    """Turns a parsed completion request plus its headers into generated text."""

    def __init__(
        self,
        registry: ModelRegistry | None = None,
        client_factory: ClientFactory = build_client,
        timeout: float | None = None,
    ):
        self.registry = registry or ModelRegistry()
        self.client_factory = client_factory
        self.timeout = timeout or get_generation_timeout()

    def resolve_descriptor(self, request: CompletionRequest, headers: Mapping[str, str]) -> ModelDescriptor:
        if request.model:
            return self.registry.resolve(request.model)
        return legacy_descriptor_for_headers(headers, self.registry)

    async def handle(self, request: CompletionRequest, headers: Mapping[str, str]) -> CompletionResult:
        descriptor = self.resolve_descriptor(request, headers)

        key = (headers.get(descriptor.credential_header) or "").strip()
        if not key:
            raise MissingCredential(descriptor.credential_header)

        base_url_header = BASE_URL_HEADERS.get(descriptor.provider)
        base_url = headers.get(base_url_header) if base_url_header else None

        client = self.client_factory(
            descriptor,
            Credential(descriptor.provider, key),
            base_url=base_url or None,
            timeout=self.timeout,
        )

        system = TITLE_SYSTEM_PROMPT if request.is_title else SUMMARY_SYSTEM_PROMPT
        try:
            async with client:
                text = await asyncio.wait_for(
                    client.generate(system, request.prompt, request.messages),
                    timeout=self.timeout,
                )
        except Exception as e:
            logger.error(
                "Generation failed for %s (%s, thread %s): %r",
                descriptor.logical_name, descriptor.provider, request.thread_id, e,
            )
            public = "Failed to generate title" if request.is_title else "Failed to generate response"
            raise UpstreamGenerationFailure(public) from e

        if request.is_title:
            text = clean_title(text)

        return CompletionResult(
            text=text,
            is_title=request.is_title,
            message_id=request.message_id,
            thread_id=request.thread_id,
            model=descriptor.logical_name,
        )
