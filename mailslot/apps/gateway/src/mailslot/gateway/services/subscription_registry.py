"""SubscriptionRegistry -- 内存中的实时订阅登记表

receiver -> set of Subscription。句柄构造完成后才放入集合，
matching_handles 返回不可变快照，读取方不会看到半更新状态。
"""

from collections import defaultdict

import structlog
from mailslot.core.exceptions import ClosedError, ReceiverRequiredError
from mailslot.core.models import CloseReason

from .subscription import Subscription

log = structlog.get_logger()


class SubscriptionRegistry:
    """实时订阅登记表"""

    def __init__(self, buffer_size: int = 100) -> None:
        # receiver -> set of Subscription
        self._subscribers: dict[str, set[Subscription]] = defaultdict(set)
        self._buffer_size = buffer_size
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def register(self, receiver: str) -> Subscription:
        """为 receiver 创建并登记一个实时订阅句柄

        Raises:
            ReceiverRequiredError: 缺少 receiver
            ClosedError: 登记表已关闭
        """
        if not receiver:
            raise ReceiverRequiredError()
        if self._closed:
            raise ClosedError("subscription registry is closed")

        handle = Subscription(
            receiver,
            buffer_size=self._buffer_size,
            on_cancel=self.deregister,
        )
        self._subscribers[receiver].add(handle)
        log.info(
            "subscription_registered",
            subscription_id=handle.subscription_id,
            receiver=receiver,
        )
        return handle

    def deregister(self, handle: Subscription) -> None:
        """注销并关闭句柄（幂等）"""
        subscribers = self._subscribers.get(handle.receiver)
        if subscribers is not None and handle in subscribers:
            subscribers.discard(handle)
            if not subscribers:
                del self._subscribers[handle.receiver]
            log.info(
                "subscription_deregistered",
                subscription_id=handle.subscription_id,
                receiver=handle.receiver,
                dropped_count=handle.dropped_count,
            )
        handle.close(CloseReason.CANCELLED)

    def matching_handles(self, receiver: str) -> frozenset[Subscription]:
        """receiver 当前所有活跃句柄的快照"""
        return frozenset(self._subscribers.get(receiver, ()))

    def subscriber_count(self, receiver: str | None = None) -> int:
        """活跃句柄数量；receiver 为 None 时统计全部"""
        if receiver is not None:
            return len(self._subscribers.get(receiver, ()))
        return sum(len(handles) for handles in self._subscribers.values())

    def close_all(self) -> None:
        """服务关闭：关闭全部句柄并清空登记表"""
        self._closed = True
        handles = [h for handles in self._subscribers.values() for h in handles]
        self._subscribers.clear()
        for handle in handles:
            handle.close(CloseReason.SHUTDOWN)
        log.info("subscription_registry_closed", closed_count=len(handles))
