"""Subscription 句柄单元测试

测试内容：
1. 非阻塞投递与读取
2. 缓冲区满 -> BEHIND -> GapNotice
3. resume 覆盖缺口后回到 LIVE
4. 取消与关闭语义
"""

import asyncio
from datetime import UTC, datetime

import pytest
from mailslot.core.exceptions import ClosedError
from mailslot.core.models import CloseReason, GapNotice, Message, SubscriptionState
from mailslot.gateway.services.subscription import Subscription


def _msg(message_id: int, receiver: str = "bob") -> Message:
    return Message(
        id=message_id,
        receiver=receiver,
        sender="alice",
        content=f"m{message_id}",
        timestamp=datetime.now(UTC),
    )


def _live_handle(buffer_size: int = 3) -> Subscription:
    handle = Subscription("bob", buffer_size=buffer_size)
    handle.resume(0)
    return handle


class TestOfferAndRead:
    async def test_offer_then_read(self):
        handle = _live_handle()
        assert handle.offer(_msg(1)) is True
        assert handle.buffered == 1

        item = await handle.next_item()
        assert item.id == 1
        assert handle.last_delivered_id == 1
        assert handle.buffered == 0

    async def test_offer_accepted_before_live(self):
        """回补期间的投递先进入缓冲区"""
        handle = Subscription("bob", buffer_size=3)
        handle.begin_backfill()
        assert handle.state == SubscriptionState.BACKFILLING
        assert handle.offer(_msg(1)) is True

    async def test_already_delivered_ids_skipped(self):
        handle = Subscription("bob", buffer_size=5)
        handle.offer(_msg(3))
        handle.offer(_msg(4))
        handle.offer(_msg(5))
        # 回补已读到 4
        handle.resume(4)

        item = await handle.next_item()
        assert item.id == 5

    async def test_reader_waits_for_offer(self):
        handle = _live_handle()
        reader = asyncio.create_task(handle.next_item())
        await asyncio.sleep(0.01)
        assert not reader.done()

        handle.offer(_msg(1))
        item = await asyncio.wait_for(reader, timeout=1.0)
        assert item.id == 1

    async def test_async_iteration(self):
        handle = _live_handle()
        for i in (1, 2):
            handle.offer(_msg(i))
        handle.cancel()

        # 取消时缓冲区被释放，迭代直接结束
        assert [m async for m in handle] == []


class TestBehind:
    async def test_full_buffer_marks_behind(self):
        handle = _live_handle(buffer_size=2)
        assert handle.offer(_msg(1)) is True
        assert handle.offer(_msg(2)) is True
        assert handle.offer(_msg(3)) is False
        assert handle.offer(_msg(4)) is False

        assert handle.state == SubscriptionState.BEHIND
        assert handle.dropped_count == 2

    async def test_gap_notice_after_buffer_drained(self):
        handle = _live_handle(buffer_size=2)
        for i in range(1, 6):
            handle.offer(_msg(i))

        first = await handle.next_item()
        second = await handle.next_item()
        notice = await handle.next_item()

        assert [first.id, second.id] == [1, 2]
        assert isinstance(notice, GapNotice)
        assert notice.receiver == "bob"
        assert notice.after_id == 2
        assert notice.head_id == 5

    async def test_gap_notice_repeats_until_resumed(self):
        handle = _live_handle(buffer_size=1)
        handle.offer(_msg(1))
        handle.offer(_msg(2))
        await handle.next_item()

        assert isinstance(await handle.next_item(), GapNotice)
        assert isinstance(await handle.next_item(), GapNotice)

    async def test_resume_below_gap_head_stays_behind(self):
        handle = _live_handle(buffer_size=1)
        handle.offer(_msg(1))
        handle.offer(_msg(2))
        handle.offer(_msg(3))

        assert handle.resume(2) is False
        assert handle.state == SubscriptionState.BEHIND

    async def test_resume_covering_gap_returns_live(self):
        handle = _live_handle(buffer_size=1)
        handle.offer(_msg(1))
        handle.offer(_msg(2))
        handle.offer(_msg(3))
        await handle.next_item()

        assert handle.resume(3) is True
        assert handle.state == SubscriptionState.LIVE

        assert handle.offer(_msg(4)) is True
        item = await handle.next_item()
        assert item.id == 4

    async def test_buffered_messages_not_reread_after_resume(self):
        handle = _live_handle(buffer_size=2)
        for i in range(1, 5):
            handle.offer(_msg(i))

        # 回补直接覆盖到 4，缓冲区中的 1、2 被移除
        handle.resume(4)
        assert handle.buffered == 0
        assert handle.offer(_msg(5)) is True
        item = await handle.next_item()
        assert item.id == 5


class TestClose:
    async def test_cancel_returns_none(self):
        handle = _live_handle()
        handle.cancel()
        assert handle.state == SubscriptionState.CLOSED
        assert handle.close_reason == CloseReason.CANCELLED
        assert await handle.next_item() is None

    async def test_shutdown_raises_closed(self):
        handle = _live_handle()
        handle.close(CloseReason.SHUTDOWN)
        with pytest.raises(ClosedError):
            await handle.next_item()

    async def test_close_wakes_waiting_reader(self):
        handle = _live_handle()
        reader = asyncio.create_task(handle.next_item())
        await asyncio.sleep(0.01)

        handle.close(CloseReason.SHUTDOWN)
        with pytest.raises(ClosedError):
            await asyncio.wait_for(reader, timeout=1.0)

    async def test_close_releases_buffer(self):
        handle = _live_handle()
        handle.offer(_msg(1))
        handle.offer(_msg(2))
        handle.close(CloseReason.CANCELLED)

        assert handle.buffered == 0
        assert handle.offer(_msg(3)) is False
        assert handle.resume(3) is False

    async def test_close_is_idempotent(self):
        handle = _live_handle()
        handle.close(CloseReason.CANCELLED)
        handle.close(CloseReason.SHUTDOWN)
        assert handle.close_reason == CloseReason.CANCELLED

    async def test_cancel_uses_callback(self):
        cancelled: list[Subscription] = []
        handle = Subscription("bob", on_cancel=cancelled.append)
        handle.cancel()
        assert cancelled == [handle]

    async def test_invalid_transition_rejected(self):
        handle = _live_handle()
        with pytest.raises(RuntimeError):
            handle._transition(SubscriptionState.BACKFILLING)

    async def test_subscription_ids_unique(self):
        ids = {Subscription("bob").subscription_id for _ in range(5)}
        assert len(ids) == 5
