"""
Incremental message delivery for polling clients.

A MessagePoller re-runs ``fetch(since)`` on a fixed interval and hands only
unseen messages to ``on_messages``. Overlapping ``poll_once`` calls share the
fetch already in flight, so one poller never has two fetches running.
"""

import asyncio
import inspect
import logging
from functools import partial
from typing import Awaitable, Callable, List, Optional, Union

from zokzz.utils.env_helper import env_int


logger = logging.getLogger(__name__)

Messages = List[dict]
FetchFn = Callable[[Optional[str]], Union[Messages, Awaitable[Messages]]]
DeliverFn = Callable[[Messages], Union[None, Awaitable[None]]]


class MessagePoller:
    def __init__(
        self,
        fetch: FetchFn,
        on_messages: DeliverFn,
        interval: float = None,
        since: Optional[str] = None,
    ):
        self.fetch = fetch
        self.on_messages = on_messages
        self.interval = interval if interval is not None else env_int("POLL_INTERVAL_SECONDS", 3)
        self.last_seen_at = since
        # ids already delivered whose createdAt equals last_seen_at
        self._boundary_ids = set()
        self._in_flight: Optional[asyncio.Future] = None
        self._task: Optional[asyncio.Task] = None

    @classmethod
    def for_conversation(cls, log, conversation_id: str, on_messages: DeliverFn, **kwargs):
        return cls(partial(log.fetch_messages, conversation_id), on_messages, **kwargs)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def poll_once(self) -> Messages:
        if self._in_flight is None or self._in_flight.done():
            self._in_flight = asyncio.ensure_future(self._poll())
        return await asyncio.shield(self._in_flight)

    async def _poll(self) -> Messages:
        since = self.last_seen_at

        if inspect.iscoroutinefunction(self.fetch):
            messages = await self.fetch(since)
        else:
            messages = await asyncio.to_thread(self.fetch, since)

        fresh = self._unseen(messages or [])
        if not fresh:
            return []

        newest = fresh[-1]["createdAt"]
        if newest != self.last_seen_at:
            self._boundary_ids = set()
        self._boundary_ids.update(m["id"] for m in fresh if m["createdAt"] == newest)
        self.last_seen_at = newest

        delivered = self.on_messages(fresh)
        if inspect.isawaitable(delivered):
            await delivered

        return fresh

    def _unseen(self, messages: Messages) -> Messages:
        fresh = []
        for message in messages:
            created_at = message.get("createdAt")
            if not created_at:
                continue
            if self.last_seen_at and created_at < self.last_seen_at:
                continue
            if created_at == self.last_seen_at and message.get("id") in self._boundary_ids:
                continue
            fresh.append(message)
        return fresh

    async def _run(self):
        while True:
            try:
                await self.poll_once()
            except Exception:
                logger.exception("message_poll_failed")
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        for task in (self._task, self._in_flight):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._task = None
        self._in_flight = None
