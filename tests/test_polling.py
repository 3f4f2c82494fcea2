import asyncio

import pytest

from zokzz.chat.models import MessageDraft
from zokzz.chat.polling import MessagePoller


def message(message_id, created_at):
    return {"id": message_id, "createdAt": created_at, "body": message_id}


class FakeLog:
    """Inclusive ``since`` like ConversationLog.fetch_messages."""

    def __init__(self):
        self.messages = []
        self.calls = []

    async def fetch(self, since):
        self.calls.append(since)
        return [m for m in self.messages if since is None or m["createdAt"] >= since]


@pytest.mark.asyncio
async def test_poll_delivers_only_unseen_messages():
    log = FakeLog()
    delivered = []
    poller = MessagePoller(log.fetch, delivered.append, interval=60)

    log.messages += [message("a", "t1"), message("b", "t2")]
    assert [m["id"] for m in await poller.poll_once()] == ["a", "b"]

    # the boundary message comes back but is not delivered again
    assert await poller.poll_once() == []
    assert log.calls[-1] == "t2"

    log.messages += [message("c", "t2"), message("d", "t3")]
    assert [m["id"] for m in await poller.poll_once()] == ["c", "d"]

    assert [[m["id"] for m in batch] for batch in delivered] == [["a", "b"], ["c", "d"]]
    assert poller.last_seen_at == "t3"


@pytest.mark.asyncio
async def test_same_timestamp_arrivals_across_polls():
    log = FakeLog()
    poller = MessagePoller(log.fetch, lambda batch: None, interval=60)

    log.messages.append(message("a", "t1"))
    await poller.poll_once()
    log.messages.append(message("b", "t1"))

    assert [m["id"] for m in await poller.poll_once()] == ["b"]
    assert await poller.poll_once() == []


@pytest.mark.asyncio
async def test_overlapping_polls_share_one_fetch():
    release = asyncio.Event()
    calls = []

    async def slow_fetch(since):
        calls.append(since)
        await release.wait()
        return [message("a", "t1")]

    poller = MessagePoller(slow_fetch, lambda batch: None, interval=60)

    first = asyncio.ensure_future(poller.poll_once())
    second = asyncio.ensure_future(poller.poll_once())
    await asyncio.sleep(0)
    release.set()

    results = await asyncio.gather(first, second)

    assert len(calls) == 1
    assert results[0] == results[1] == [message("a", "t1")]


@pytest.mark.asyncio
async def test_async_delivery_callback_is_awaited():
    log = FakeLog()
    log.messages.append(message("a", "t1"))
    received = []

    async def on_messages(batch):
        await asyncio.sleep(0)
        received.extend(batch)

    await MessagePoller(log.fetch, on_messages, interval=60).poll_once()

    assert [m["id"] for m in received] == ["a"]


@pytest.mark.asyncio
async def test_loop_survives_fetch_errors_and_stops():
    attempts = []
    delivered = asyncio.Event()

    async def flaky_fetch(since):
        attempts.append(since)
        if len(attempts) == 1:
            raise RuntimeError("store unavailable")
        return [message("a", "t1")]

    poller = MessagePoller(flaky_fetch, lambda batch: delivered.set(), interval=0.01)
    poller.start()
    assert poller.running

    await asyncio.wait_for(delivered.wait(), timeout=2)
    await poller.stop()

    assert not poller.running
    assert len(attempts) >= 2

    count = len(attempts)
    await asyncio.sleep(0.05)
    assert len(attempts) == count


@pytest.mark.asyncio
async def test_poller_over_a_conversation_log(log, graph, make_user, make_friends):
    ann = make_user("ann")
    bob = make_user("bob")
    make_friends(ann, bob)
    conversation = log.start_conversation(graph, ann, bob)

    batches = []
    poller = MessagePoller.for_conversation(log, conversation, batches.append, interval=60)

    first = log.append_message(conversation, ann, MessageDraft(body="one"))
    await poller.poll_once()
    second = log.append_message(conversation, bob, MessageDraft(body="two"))
    await poller.poll_once()
    await poller.poll_once()

    assert [[m["id"] for m in batch] for batch in batches] == [[first["id"]], [second["id"]]]
