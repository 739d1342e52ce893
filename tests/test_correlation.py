from __future__ import annotations

import asyncio

import pytest

from eventsocket.correlation import CorrelationTable, topic_list
from eventsocket.errors import ChannelClosed


@pytest.mark.asyncio
async def test_request_slot_is_single_use() -> None:
    table = CorrelationTable()
    ch = await table.register_request("r1")
    assert ch.name == "r1"
    assert table.pending_requests == ["r1"]
    assert await table.resolve_and_consume_request("r1") is ch
    assert await table.resolve_and_consume_request("r1") is None
    assert table.pending_requests == []


@pytest.mark.asyncio
async def test_duplicate_request_id_is_a_bug() -> None:
    table = CorrelationTable()
    await table.register_request("r1")
    with pytest.raises(ValueError):
        await table.register_request("r1")


@pytest.mark.asyncio
async def test_one_channel_many_topics() -> None:
    table = CorrelationTable()
    ch = await table.register_subscription(["a", "b", "a"])
    assert ch.name == "a,b"
    assert await table.resolve_subscription("a") is ch
    assert await table.resolve_subscription("b") is ch
    # lookup does not consume
    assert await table.resolve_subscription("a") is ch
    assert await table.resolve_subscription("c") is None


@pytest.mark.asyncio
async def test_empty_topic_list_rejected() -> None:
    table = CorrelationTable()
    with pytest.raises(ValueError):
        await table.register_subscription([])
    with pytest.raises(ValueError):
        await table.register_subscription([""])


@pytest.mark.asyncio
async def test_duplicate_topic_last_write_wins() -> None:
    table = CorrelationTable()
    first = await table.register_subscription(["alerts"])
    second = await table.register_subscription(["alerts"])
    assert await table.resolve_subscription("alerts") is second
    assert first.closed
    assert not second.closed


@pytest.mark.asyncio
async def test_partially_superseded_channel_stays_open() -> None:
    table = CorrelationTable()
    first = await table.register_subscription(["alerts", "metrics"])
    second = await table.register_subscription(["alerts"])
    assert await table.resolve_subscription("alerts") is second
    assert await table.resolve_subscription("metrics") is first
    assert not first.closed


@pytest.mark.asyncio
async def test_unregister_closes_channel_with_no_topics_left() -> None:
    table = CorrelationTable()
    ch = await table.register_subscription(["a", "b"])
    assert await table.unregister_subscription(["a"]) == []
    assert not ch.closed
    assert await table.unregister_subscription(["b", "unknown"]) == [ch]
    assert ch.closed
    assert table.topics == {}


@pytest.mark.asyncio
async def test_cancel_request() -> None:
    table = CorrelationTable()
    ch = await table.register_request("r1")
    assert await table.cancel_request("r1") is True
    assert await table.cancel_request("r1") is False
    assert await table.resolve_and_consume_request("r1") is None
    with pytest.raises(ChannelClosed):
        await ch.get()


@pytest.mark.asyncio
async def test_expire_requests() -> None:
    table = CorrelationTable()
    old = await table.register_request("old")
    await asyncio.sleep(0.05)
    fresh = await table.register_request("fresh")
    assert await table.expire_requests(0.02) == ["old"]
    assert old.closed
    assert not fresh.closed
    assert table.pending_requests == ["fresh"]


@pytest.mark.asyncio
async def test_close_all() -> None:
    table = CorrelationTable()
    req = await table.register_request("r1")
    sub = await table.register_subscription(["a", "b"])
    await table.close_all()
    assert req.closed and sub.closed
    assert table.pending_requests == []
    assert table.topics == {}


@pytest.mark.asyncio
async def test_concurrent_registration() -> None:
    table = CorrelationTable()
    channels = await asyncio.gather(*(table.register_request(f"r{i}") for i in range(50)))
    assert len(set(map(id, channels))) == 50
    assert sorted(table.pending_requests) == sorted(f"r{i}" for i in range(50))


@pytest.mark.asyncio
async def test_rolled_back_subscription_restores_previous_channel() -> None:
    table = CorrelationTable()
    first = await table.register_subscription(["alerts"])
    staged = await table.stage_subscription(["alerts", "metrics"])
    assert staged.topics == ["alerts", "metrics"]
    assert staged.replaced == {"alerts": first}
    # superseded channel stays open until the change is committed
    assert not first.closed

    await table.rollback_subscription(staged)
    assert table.topics == {"alerts": first}
    assert not first.closed
    assert staged.channel.closed


@pytest.mark.asyncio
async def test_rollback_leaves_later_registration_alone() -> None:
    table = CorrelationTable()
    staged = await table.stage_subscription(["alerts"])
    later = await table.register_subscription(["alerts"])
    await table.rollback_subscription(staged)
    assert await table.resolve_subscription("alerts") is later


@pytest.mark.asyncio
async def test_commit_closes_fully_superseded_channel() -> None:
    table = CorrelationTable()
    first = await table.register_subscription(["alerts"])
    staged = await table.stage_subscription(["alerts"])
    await table.commit_subscription(staged)
    assert first.closed
    assert await table.resolve_subscription("alerts") is staged.channel


def test_topic_list() -> None:
    assert topic_list(["a", "", "b", "a"]) == ["a", "b"]
    assert topic_list("a") == ["a"]
    with pytest.raises(ValueError):
        topic_list(())
