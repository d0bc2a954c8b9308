"""Best-effort thread titles generated beside the main conversation.

The pipeline posts the first user message of a thread to the completion
endpoint with ``isTitle`` set and writes the answer back to persistence. It
never blocks the chat and never raises to its caller. A run that claims the
thread releases the in-flight marker and loading flag however it ends; a run
that finds the thread already claimed leaves both alone.
"""

import asyncio
import logging
from collections.abc import Callable

import httpx

from .config import get_title_timeout, title_regeneration_enabled
from .core import TitleJob, TitleJobState
from .credentials import CredentialStore, ModelSelection, legacy_title_model
from .errors import PersistenceFailure
from .persistence import ThreadPersistence

logger = logging.getLogger(__name__)

COMPLETION_PATH = "/api/completion"
FAILURE_NOTICE = "Failed to generate a summary for the message"


class TitleLoadingTracker:
    """Which threads currently show a title spinner."""

    def __init__(self):
        self._loading: set[str] = set()

    def set_loading(self, thread_id: str, is_loading: bool) -> None:
        if is_loading:
            self._loading.add(thread_id)
        else:
            self._loading.discard(thread_id)

    def is_loading(self, thread_id: str) -> bool:
        return thread_id in self._loading

    @property
    def loading_threads(self) -> frozenset[str]:
        return frozenset(self._loading)


class CompletionRejected(Exception):
    """The completion endpoint answered with a non-2xx status."""

    def __init__(self, status_code: int, error: str):
        self.status_code = status_code
        self.error = error
        super().__init__(f"HTTP {status_code}: {error}")


class TitleSummaryPipeline:
    """Generates and stores thread titles and message summaries."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        store: CredentialStore,
        persistence: ThreadPersistence,
        selection: ModelSelection | None = None,
        notify: Callable[[str], None] | None = None,
        loading: TitleLoadingTracker | None = None,
        timeout: float | None = None,
        allow_regeneration: bool | None = None,
    ):
        self.client = client
        self.store = store
        self.persistence = persistence
        self.selection = selection
        self.notify = notify or (lambda message: logger.warning("%s", message))
        self.loading = loading or TitleLoadingTracker()
        self.timeout = timeout or get_title_timeout()
        if allow_regeneration is None:
            allow_regeneration = title_regeneration_enabled()
        self.allow_regeneration = allow_regeneration
        self._tasks: set[asyncio.Task] = set()

    def schedule(self, thread_id: str, message_id: str, prompt: str, is_title: bool = True) -> asyncio.Task:
        """Start ``summarize`` as a background task and return it."""
        task = asyncio.create_task(self.summarize(thread_id, message_id, prompt, is_title))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for every scheduled run to settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def summarize(self, thread_id: str, message_id: str, prompt: str, is_title: bool = True) -> TitleJob:
        job = TitleJob(thread_id=thread_id, message_id=message_id)

        choice = self._choose_model()
        if choice is None:
            logger.info("No API key available; skipping title for thread %s", thread_id)
            job.state = TitleJobState.SKIPPED
            return job
        model, credential = choice

        claimed = False
        try:
            if is_title:
                if not self.allow_regeneration and await self._has_title(thread_id):
                    job.state = TitleJobState.SKIPPED
                    return job
                claimed = await self.persistence.mark_title_in_flight(thread_id)
                if not claimed:
                    logger.info("Title already in flight for thread %s", thread_id)
                    job.state = TitleJobState.SKIPPED
                    return job
                self.loading.set_loading(thread_id, True)

            job.state = TitleJobState.REQUESTING
            body = {
                "model": model,
                "prompt": prompt,
                "isTitle": is_title,
                "messageId": message_id,
                "threadId": thread_id,
            }
            headers = self.store.headers_for(credential)
            payload = await asyncio.wait_for(self._post(body, headers), timeout=self.timeout)
            text = payload.get("title") if is_title else payload.get("result")
            if not isinstance(text, str) or not text:
                raise ValueError("completion response carried no text")

            if is_title:
                await self.persistence.update_thread(thread_id, text)
            await self.persistence.create_message_summary(thread_id, message_id, text)

            job.state = TitleJobState.SUCCEEDED
            job.title = text
        except (httpx.HTTPError, asyncio.TimeoutError, CompletionRejected, PersistenceFailure, ValueError) as e:
            logger.error("Title generation failed for thread %s: %r", thread_id, e)
            job.state = TitleJobState.FAILED
            job.error = str(e) or type(e).__name__
            self.notify(FAILURE_NOTICE)
        finally:
            if claimed:
                self.loading.set_loading(thread_id, False)
                await self._release(thread_id)
        return job

    # ── Private helpers ──────────────────────────────────────────────

    def _choose_model(self):
        if self.selection is not None:
            return self.selection.title_model_for(self.store)
        return legacy_title_model(self.store)

    async def _has_title(self, thread_id: str) -> bool:
        thread = await self.persistence.get_thread(thread_id)
        return bool(thread and thread.title)

    async def _post(self, body: dict, headers: dict) -> dict:
        resp = await self.client.post(COMPLETION_PATH, json=body, headers=headers)
        if resp.is_error:
            try:
                error = resp.json().get("error", "")
            except ValueError:
                error = resp.text
            raise CompletionRejected(resp.status_code, error)
        payload = resp.json()
        if not isinstance(payload, dict):
            raise ValueError("completion response is not an object")
        return payload

    async def _release(self, thread_id: str) -> None:
        try:
            await self.persistence.clear_title_in_flight(thread_id)
        except PersistenceFailure as e:
            # `aichat-gateway recover` clears the leftover marker
            logger.error("Could not clear title marker for thread %s: %s", thread_id, e)
