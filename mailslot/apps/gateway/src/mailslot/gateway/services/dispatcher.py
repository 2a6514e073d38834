"""Dispatcher -- 持久化后的实时扇出

每条持久化成功的消息恰好 publish 一次。投递非阻塞：
慢订阅方的缓冲区满时只影响它自己（进入 BEHIND），
不会阻塞追加路径或其他订阅方，也不会向发送方报错。
"""

from dataclasses import dataclass

import structlog
from mailslot.core.models import Message, SubscriptionState

from .subscription_registry import SubscriptionRegistry

log = structlog.get_logger()


@dataclass
class DispatchResult:
    """单次扇出结果"""

    delivered: int = 0
    dropped: int = 0


class Dispatcher:
    """基于 SubscriptionRegistry 快照的扇出器"""

    def __init__(self, registry: SubscriptionRegistry) -> None:
        self._registry = registry

    def publish(self, message: Message) -> DispatchResult:
        """向 message.receiver 的所有活跃句柄投递

        Args:
            message: 已持久化的消息

        Returns:
            DispatchResult（仅用于日志/测试，调用方无需处理）
        """
        result = DispatchResult()
        for handle in self._registry.matching_handles(message.receiver):
            try:
                if handle.offer(message):
                    result.delivered += 1
                elif handle.state != SubscriptionState.CLOSED:
                    result.dropped += 1
            except Exception as e:
                # 单个订阅方的故障不影响发送方和其他订阅方
                result.dropped += 1
                log.error(
                    "dispatch_offer_failed",
                    subscription_id=handle.subscription_id,
                    receiver=message.receiver,
                    message_id=message.id,
                    error_type=type(e).__name__,
                )

        if result.dropped:
            log.info(
                "dispatch_partial_delivery",
                receiver=message.receiver,
                message_id=message.id,
                delivered=result.delivered,
                dropped=result.dropped,
            )
        return result
