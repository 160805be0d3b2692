"""Tests for realtime thread sync."""

import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock
from src.services.chat import send_text_message
from src.services.thread_sync import ThreadSyncBuffer, subscribe_to_match_thread
from tests.utils.factories import create_match_data


@pytest.fixture
def match(fake_db, customer, provider, listing):
    row = create_match_data(customer["id"], provider["id"], listing["id"])
    fake_db.seed("matches", row)
    return row


@pytest.mark.unit
@pytest.mark.asyncio
async def test_burst_is_coalesced_into_one_refresh(fake_db, customer, provider, match):
    """Test several inserts within the window trigger a single re-read."""
    listener = AsyncMock()
    buffer = ThreadSyncBuffer(customer["id"], listener, window_seconds=0.05)

    for text in ("one", "two", "three"):
        await send_text_message(provider["id"], match["id"], text)
        await buffer.enqueue(match["id"])

    assert buffer.pending[match["id"]] == 3
    await asyncio.sleep(0.2)

    listener.assert_awaited_once()
    view = listener.await_args.args[0]
    assert [m.content for m in view.messages] == ["one", "two", "three"]
    assert buffer.pending == {}
    assert buffer.timers == {}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_each_thread_refreshes_separately(fake_db, customer, provider, listing, match):
    """Test notifications for different matches are not merged."""
    other = create_match_data(customer["id"], provider["id"])
    fake_db.seed("matches", other)
    listener = AsyncMock()
    buffer = ThreadSyncBuffer(customer["id"], listener, window_seconds=0.05)

    await buffer.enqueue(match["id"])
    await buffer.enqueue(other["id"])
    await asyncio.sleep(0.2)

    refreshed = {call.args[0].match.id for call in listener.await_args_list}
    assert refreshed == {match["id"], other["id"]}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_flush_reads_store_not_payload(fake_db, customer, provider, match):
    """Test a flush returns the store's current thread."""
    listener = AsyncMock()
    buffer = ThreadSyncBuffer(customer["id"], listener, window_seconds=60)
    await buffer.enqueue(match["id"])
    await send_text_message(provider["id"], match["id"], "written after the push")

    view = await buffer.flush(match["id"])

    assert [m.content for m in view.messages] == ["written after the push"]
    assert match["id"] not in buffer.timers
    listener.assert_awaited_once_with(view)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_refresh_failure_is_contained(fake_db, match):
    """Test a failed refresh is logged and skipped."""
    listener = AsyncMock()
    buffer = ThreadSyncBuffer("not-a-party", listener, window_seconds=60)

    assert await buffer.flush(match["id"]) is None
    listener.assert_not_awaited()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_close_cancels_pending_refreshes(fake_db, customer, match):
    """Test closing drops scheduled refreshes."""
    listener = AsyncMock()
    buffer = ThreadSyncBuffer(customer["id"], listener, window_seconds=0.05)
    await buffer.enqueue(match["id"])

    await buffer.close()
    await asyncio.sleep(0.1)

    listener.assert_not_awaited()
    assert buffer.pending == {}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_subscribe_wires_insert_events_to_buffer():
    """Test the realtime channel listens to message inserts of one match."""
    channel = MagicMock()
    channel.subscribe = AsyncMock()
    client = MagicMock()
    client.channel.return_value = channel
    buffer = ThreadSyncBuffer("user-1", AsyncMock(), window_seconds=60)

    result = await subscribe_to_match_thread(client, "01MATCH", buffer)

    assert result is channel
    channel.subscribe.assert_awaited_once()
    args, kwargs = channel.on_postgres_changes.call_args
    assert args[0] == "INSERT"
    assert kwargs["table"] == "messages"
    assert kwargs["filter"] == "match_id=eq.01MATCH"

    kwargs["callback"]({"data": {"record": {"content": "ignored"}}})
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    assert buffer.pending == {"01MATCH": 1}
    await buffer.close()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_notify_holds_callback_task_until_done():
    """Test tasks scheduled from realtime callbacks stay referenced until they finish."""
    buffer = ThreadSyncBuffer("user-1", AsyncMock(), window_seconds=60)

    buffer.notify("01MATCH")
    assert len(buffer.callback_tasks) == 1

    await asyncio.sleep(0)
    await asyncio.sleep(0)

    assert buffer.callback_tasks == set()
    assert buffer.pending == {"01MATCH": 1}
    await buffer.close()
