"""Thread sync - debounce realtime message inserts into authoritative re-reads.

Realtime pushes only say "something changed in this thread". The buffer
coalesces bursts per match within a short window and then re-reads the whole
thread from the store. Push payloads are never used as state.
"""

import os
import asyncio
from typing import Awaitable, Callable, Optional
from src.services.chat import ThreadView, get_thread
from src.utils.logging import get_correlation_id, get_structured_logger, log_timing, mask_user_id

logger = get_structured_logger(__name__)

# Default refresh window (seconds)
DEFAULT_REFRESH_WINDOW = float(os.environ.get("THREAD_REFRESH_WINDOW_SECONDS", "0.5"))

ThreadListener = Callable[[ThreadView], Awaitable[None]]


class ThreadSyncBuffer:
    """Coalesce change notifications per match and refresh each thread once per window."""

    def __init__(
        self,
        actor_id: str,
        listener: ThreadListener,
        window_seconds: float = DEFAULT_REFRESH_WINDOW,
    ):
        self.actor_id = actor_id
        self.listener = listener
        self.window_seconds = window_seconds
        self.pending: dict[str, int] = {}  # match_id -> notifications since last refresh
        self.timers: dict[str, asyncio.Task] = {}
        self.callback_tasks: set[asyncio.Task] = set()
        logger.debug(
            "ThreadSyncBuffer initialized",
            actor_id=mask_user_id(actor_id),
            refresh_window_seconds=window_seconds
        )

    async def enqueue(self, match_id: str) -> None:
        """Note a change in a thread and (re)start its refresh timer."""
        self.pending[match_id] = self.pending.get(match_id, 0) + 1

        if match_id in self.timers:
            self.timers[match_id].cancel()

        self.timers[match_id] = asyncio.create_task(self._refresh_after_delay(match_id))

    def notify(self, match_id: str) -> None:
        """Schedule ``enqueue`` from a synchronous realtime callback."""
        task = asyncio.get_running_loop().create_task(self.enqueue(match_id))
        # The loop only keeps weak references to tasks
        self.callback_tasks.add(task)
        task.add_done_callback(self.callback_tasks.discard)

    async def _refresh_after_delay(self, match_id: str) -> None:
        await asyncio.sleep(self.window_seconds)
        self.timers.pop(match_id, None)
        await self.flush(match_id)

    async def flush(self, match_id: str) -> Optional[ThreadView]:
        """Re-read the thread now and hand the snapshot to the listener."""
        coalesced = self.pending.pop(match_id, 0)
        timer = self.timers.pop(match_id, None)
        if timer and timer is not asyncio.current_task():
            timer.cancel()

        try:
            with log_timing("refresh_thread", logger=logger, match_id=match_id, coalesced=coalesced):
                view = await get_thread(self.actor_id, match_id)
            await self.listener(view)
            return view
        except Exception as e:
            logger.error(
                "Thread refresh failed",
                correlation_id=get_correlation_id(),
                match_id=match_id,
                coalesced=coalesced,
                error=str(e),
                exc_info=True
            )
            return None

    async def close(self) -> None:
        """Cancel pending refreshes."""
        for task in self.callback_tasks:
            task.cancel()
        self.callback_tasks.clear()
        for timer in self.timers.values():
            timer.cancel()
        self.timers.clear()
        self.pending.clear()


async def subscribe_to_match_thread(async_client, match_id: str, buffer: ThreadSyncBuffer):
    """
    Subscribe to message inserts of one match.

    ``async_client`` is a supabase ``AsyncClient``. Returns the subscribed
    channel; call ``unsubscribe()`` on it to stop.
    """
    def on_insert(payload) -> None:
        buffer.notify(match_id)

    channel = async_client.channel(f"messages:{match_id}")
    channel.on_postgres_changes(
        "INSERT",
        schema="public",
        table="messages",
        filter=f"match_id=eq.{match_id}",
        callback=on_insert,
    )
    await channel.subscribe()
    logger.info("Subscribed to thread changes", match_id=match_id)
    return channel
