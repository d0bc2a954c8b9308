"""Tests for the SQLite thread store."""

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from aichat_gateway.core import Message
from aichat_gateway.errors import PersistenceFailure
from aichat_gateway.persistence import SQLiteThreadStore

T0 = datetime(2025, 1, 15, 10, 0, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_messages_are_ordered(thread_store):
    await thread_store.create_message("t-1", Message("t-1", "user", "first", created_at=T0))
    await thread_store.create_message("t-1", Message("t-1", "assistant", "second", created_at=T0 + timedelta(seconds=5)))

    thread = await thread_store.get_thread("t-1")
    assert thread.title is None
    assert [m.content for m in thread.messages] == ["first", "second"]
    assert thread.messages[1].role == "assistant"
    assert thread.updated_at == T0 + timedelta(seconds=5)
    assert await thread_store.count_user_messages("t-1") == 1


@pytest.mark.asyncio
async def test_get_missing_thread(thread_store):
    assert await thread_store.get_thread("nope") is None


@pytest.mark.asyncio
async def test_update_thread_and_summaries(thread_store):
    await thread_store.create_thread("t-1")
    await thread_store.update_thread("t-1", "Fix login bug")
    await thread_store.create_message_summary("t-1", "m-1", "Fix login bug")

    thread = await thread_store.get_thread("t-1")
    assert thread.title == "Fix login bug"
    summaries = await thread_store.list_message_summaries("t-1")
    assert [(s.message_id, s.content) for s in summaries] == [("m-1", "Fix login bug")]


@pytest.mark.asyncio
async def test_in_flight_marker_is_single_slot(thread_store):
    assert await thread_store.mark_title_in_flight("t-1") is True
    assert await thread_store.mark_title_in_flight("t-1") is False
    assert await thread_store.is_title_in_flight("t-1") is True

    await thread_store.clear_title_in_flight("t-1")
    assert await thread_store.is_title_in_flight("t-1") is False
    assert await thread_store.mark_title_in_flight("t-1") is True


@pytest.mark.asyncio
async def test_reset_in_flight_recovers_after_restart(tmp_path):
    db_path = tmp_path / "threads.sqlite3"
    first = SQLiteThreadStore(db_path)
    await first.mark_title_in_flight("t-1")
    await first.mark_title_in_flight("t-2")

    # a new process opening the same database
    second = SQLiteThreadStore(db_path)
    assert await second.reset_in_flight() == 2
    assert await second.is_title_in_flight("t-1") is False
    assert await second.reset_in_flight() == 0


@pytest.mark.asyncio
async def test_duplicate_message_id_is_persistence_failure(thread_store):
    message = Message("t-1", "user", "hi")
    await thread_store.create_message("t-1", message)
    with pytest.raises(PersistenceFailure) as exc_info:
        await thread_store.create_message("t-1", message)
    assert isinstance(exc_info.value.__cause__, sqlite3.IntegrityError)
