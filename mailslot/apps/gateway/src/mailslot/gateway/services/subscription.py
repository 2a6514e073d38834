"""Subscription -- 单个实时订阅句柄

每个句柄持有一个有界 asyncio.Queue。Dispatcher 以非阻塞方式投递；
缓冲区满时丢弃并标记 BEHIND，订阅方下一次读取时收到 GapNotice，
据此从 MessageStore 回补，而不是静默丢消息。
"""

import asyncio
from collections.abc import Callable

import structlog
from mailslot.core.exceptions import ClosedError
from mailslot.core.models import (
    CloseReason,
    GapNotice,
    Message,
    SubscriptionState,
    validate_transition,
)
from ulid import ULID

log = structlog.get_logger()

# 关闭哨兵：关闭时放入队列以唤醒等待中的读取方
_CLOSED = object()


class Subscription:
    """实时订阅句柄

    状态机：CREATED -> BACKFILLING -> LIVE -> (BEHIND <-> LIVE) -> CLOSED。
    只由拥有它的会话读取；Dispatcher 只调用 offer()。
    """

    def __init__(
        self,
        receiver: str,
        buffer_size: int = 100,
        on_cancel: Callable[["Subscription"], None] | None = None,
    ) -> None:
        self.subscription_id = str(ULID())
        self.receiver = receiver
        # 多留一个位置给关闭哨兵
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=buffer_size + 1)
        self._buffer_size = buffer_size
        self._state = SubscriptionState.CREATED
        self._close_reason: CloseReason | None = None
        self._last_delivered_id = 0
        self._gap_head_id = 0
        self._dropped_count = 0
        self._on_cancel = on_cancel

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def close_reason(self) -> CloseReason | None:
        return self._close_reason

    @property
    def last_delivered_id(self) -> int:
        return self._last_delivered_id

    @property
    def dropped_count(self) -> int:
        return self._dropped_count

    @property
    def buffered(self) -> int:
        if self._state == SubscriptionState.CLOSED:
            return 0
        return self._queue.qsize()

    def offer(self, message: Message) -> bool:
        """非阻塞投递（Dispatcher 调用）

        Returns:
            True 表示已放入缓冲区；False 表示被丢弃或句柄已关闭
        """
        if self._state == SubscriptionState.CLOSED:
            return False

        if self._state == SubscriptionState.BEHIND:
            # 已落后：继续丢弃，只推进缺口上界
            self._gap_head_id = max(self._gap_head_id, message.id)
            self._dropped_count += 1
            return False

        if self._queue.qsize() >= self._buffer_size:
            self._gap_head_id = message.id
            self._dropped_count += 1
            self._transition(SubscriptionState.BEHIND)
            log.warning(
                "subscription_behind",
                subscription_id=self.subscription_id,
                receiver=self.receiver,
                last_delivered_id=self._last_delivered_id,
                head_id=message.id,
            )
            return False

        self._queue.put_nowait(message)
        return True

    async def next_item(self) -> Message | GapNotice | None:
        """读取下一项

        BEHIND 且缓冲区已读空时返回 GapNotice；
        已取消返回 None；因服务关闭而关闭时抛出 ClosedError。
        """
        while True:
            if self._state == SubscriptionState.CLOSED:
                return self._closed_result()

            if self._state == SubscriptionState.BEHIND and self._queue.empty():
                return GapNotice(
                    receiver=self.receiver,
                    after_id=self._last_delivered_id,
                    head_id=self._gap_head_id,
                )

            item = await self._queue.get()
            if item is _CLOSED:
                return self._closed_result()
            # 回补与实时投递交界处的重复消息
            if item.id <= self._last_delivered_id:
                continue
            self._last_delivered_id = item.id
            return item

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Message | GapNotice:
        item = await self.next_item()
        if item is None:
            raise StopAsyncIteration
        return item

    def begin_backfill(self) -> None:
        """进入 BACKFILLING（仅从 CREATED）"""
        if self._state == SubscriptionState.CREATED:
            self._transition(SubscriptionState.BACKFILLING)

    def resume(self, last_seen_id: int) -> bool:
        """订阅方已回补到 last_seen_id，尝试回到 LIVE

        Returns:
            True 表示已处于 LIVE；False 表示回补未覆盖缺口（仍为 BEHIND）或已关闭
        """
        if self._state == SubscriptionState.CLOSED:
            return False

        self._last_delivered_id = max(self._last_delivered_id, last_seen_id)
        self._discard_delivered()
        if self._state == SubscriptionState.BEHIND and last_seen_id < self._gap_head_id:
            return False

        if self._state != SubscriptionState.LIVE:
            self._transition(SubscriptionState.LIVE)
        return True

    def cancel(self) -> None:
        """订阅方主动取消；通过 registry 注销（幂等）"""
        if self._on_cancel is not None:
            self._on_cancel(self)
        else:
            self.close(CloseReason.CANCELLED)

    def close(self, reason: CloseReason) -> None:
        """关闭句柄：立即释放缓冲区并唤醒读取方（幂等，不阻塞）"""
        if self._state == SubscriptionState.CLOSED:
            return
        self._transition(SubscriptionState.CLOSED)
        self._close_reason = reason

        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    def _discard_delivered(self) -> None:
        """移除缓冲区中已被回补覆盖的消息，释放容量"""
        kept = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item.id > self._last_delivered_id:
                kept.append(item)
        for item in kept:
            self._queue.put_nowait(item)

    def _closed_result(self) -> None:
        if self._close_reason == CloseReason.SHUTDOWN:
            raise ClosedError("subscription closed by shutdown")
        return None

    def _transition(self, to_state: SubscriptionState) -> None:
        if not validate_transition(self._state, to_state):
            raise RuntimeError(
                f"Invalid subscription transition: {self._state} -> {to_state}"
            )
        self._state = to_state
