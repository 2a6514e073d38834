"""LiveFeed -- 回补 + 实时尾随的订阅消息流

订阅句柄在回补开始前已登记，回补期间追加的消息会进入句柄缓冲区；
交界处的重复消息按 id 去重。收到 GapNotice 时从游标处回补，
回补覆盖缺口后句柄回到 LIVE。
"""

from collections import deque

import structlog
from mailslot.core.exceptions import ClosedError
from mailslot.core.models import (
    CloseReason,
    GapNotice,
    Message,
    SubscriptionState,
)
from mailslot.core.store import MessageStore

from .subscription import Subscription

log = structlog.get_logger()


class LiveFeed:
    """单个订阅会话的消息流（async iterator of Message）

    每个 id 只产出一次，且严格递增。取消后迭代结束；
    服务关闭时抛出 ClosedError。
    """

    def __init__(
        self,
        handle: Subscription,
        store: MessageStore,
        last_known_id: int = 0,
        page_size: int = 100,
    ) -> None:
        self._handle = handle
        self._store = store
        self._cursor = last_known_id
        self._page_size = page_size
        self._pending: deque[Message] = deque()
        self._backfilled = False
        self._gap_count = 0
        self._last_gap: GapNotice | None = None

    @property
    def receiver(self) -> str:
        return self._handle.receiver

    @property
    def subscription_id(self) -> str:
        return self._handle.subscription_id

    @property
    def state(self) -> SubscriptionState:
        return self._handle.state

    @property
    def last_id(self) -> int:
        """最后一条已产出消息的 id"""
        return self._cursor

    @property
    def gap_count(self) -> int:
        return self._gap_count

    @property
    def last_gap(self) -> GapNotice | None:
        return self._last_gap

    def __aiter__(self) -> "LiveFeed":
        return self

    async def __anext__(self) -> Message:
        while True:
            self._raise_if_closed()

            if self._pending:
                message = self._pending.popleft()
                self._cursor = message.id
                return message

            if not self._backfilled:
                self._handle.begin_backfill()
                await self._backfill_page()
                continue

            item = await self._handle.next_item()
            if item is None:
                raise StopAsyncIteration

            if isinstance(item, GapNotice):
                self._gap_count += 1
                self._last_gap = item
                log.info(
                    "live_feed_gap_detected",
                    subscription_id=self.subscription_id,
                    receiver=self.receiver,
                    after_id=item.after_id,
                    head_id=item.head_id,
                )
                self._backfilled = False
                continue

            if item.id <= self._cursor:
                continue
            if item.id > self._cursor + 1:
                # id 稠密：跳号说明中间的消息未经实时投递，从游标处回补
                self._gap_count += 1
                log.info(
                    "live_feed_id_jump",
                    subscription_id=self.subscription_id,
                    receiver=self.receiver,
                    cursor=self._cursor,
                    message_id=item.id,
                )
                self._backfilled = False
                continue
            self._cursor = item.id
            return item

    async def _backfill_page(self) -> None:
        """从游标处读取一页历史；读到不足一页时视为已追上，尝试回到 LIVE"""
        page = await self._store.query(self.receiver, self._cursor, self._page_size)
        self._pending.extend(page)
        if len(page) < self._page_size:
            self._backfilled = True
            caught_up_to = page[-1].id if page else self._cursor
            # 若回补期间又有投递被丢弃，句柄仍为 BEHIND，下一次读取会再次收到 GapNotice
            self._handle.resume(caught_up_to)

    def _raise_if_closed(self) -> None:
        if self._handle.state != SubscriptionState.CLOSED:
            return
        if self._handle.close_reason == CloseReason.SHUTDOWN:
            raise ClosedError("subscription closed by shutdown")
        raise StopAsyncIteration

    def cancel(self) -> None:
        """取消订阅（幂等）"""
        self._handle.cancel()

    async def __aenter__(self) -> "LiveFeed":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.cancel()
