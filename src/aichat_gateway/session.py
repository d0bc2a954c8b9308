"""Chat session glue: persist messages and kick off title generation."""

import asyncio
import logging
from typing import Optional

from .core import Message
from .persistence import ThreadPersistence
from .title import TitleSummaryPipeline

logger = logging.getLogger(__name__)


class ChatSession:
    """Records a thread's messages; the first user message triggers a title."""

    def __init__(self, persistence: ThreadPersistence, pipeline: Optional[TitleSummaryPipeline] = None):
        self.persistence = persistence
        self.pipeline = pipeline

    async def send_user_message(self, thread_id: str, content: str) -> tuple[Message, Optional[asyncio.Task]]:
        """Persist a user message.

        Returns the message and, when this was the thread's first user
        message, the background title task. The caller does not need to
        await the task; the chat continues regardless of its outcome.
        """
        message = Message(thread_id=thread_id, role="user", content=content)
        await self.persistence.create_message(thread_id, message)

        task = None
        if self.pipeline is not None and await self.persistence.count_user_messages(thread_id) == 1:
            task = self.pipeline.schedule(thread_id, message.id, content, is_title=True)
        return message, task

    async def record_assistant_message(self, thread_id: str, content: str) -> Message:
        message = Message(thread_id=thread_id, role="assistant", content=content)
        await self.persistence.create_message(thread_id, message)
        return message
