"""Dispatcher 扇出测试

测试内容：
1. 只投递给 message.receiver 的句柄
2. 慢订阅方不影响其他订阅方
3. 单个句柄故障被隔离
"""

from datetime import UTC, datetime

from mailslot.core.models import CloseReason, Message, SubscriptionState
from mailslot.gateway.services.dispatcher import DispatchResult, Dispatcher
from mailslot.gateway.services.subscription_registry import SubscriptionRegistry


def _msg(message_id: int, receiver: str = "bob") -> Message:
    return Message(
        id=message_id,
        receiver=receiver,
        sender="alice",
        content=f"m{message_id}",
        timestamp=datetime.now(UTC),
    )


class TestDispatcher:
    def test_no_subscribers(self):
        dispatcher = Dispatcher(SubscriptionRegistry())
        assert dispatcher.publish(_msg(1)) == DispatchResult(delivered=0, dropped=0)

    def test_delivers_to_matching_receiver_only(self):
        registry = SubscriptionRegistry(buffer_size=4)
        bob_1 = registry.register("bob")
        bob_2 = registry.register("bob")
        carol = registry.register("carol")

        result = Dispatcher(registry).publish(_msg(1))

        assert result.delivered == 2
        assert bob_1.buffered == 1
        assert bob_2.buffered == 1
        assert carol.buffered == 0

    async def test_slow_subscriber_isolated(self):
        registry = SubscriptionRegistry(buffer_size=1)
        slow = registry.register("bob")
        fast = registry.register("bob")
        dispatcher = Dispatcher(registry)

        first = dispatcher.publish(_msg(1))
        # fast 及时读取
        await fast.next_item()
        second = dispatcher.publish(_msg(2))

        assert first.delivered == 2
        assert second == DispatchResult(delivered=1, dropped=1)
        assert slow.state == SubscriptionState.BEHIND
        assert fast.state != SubscriptionState.BEHIND

    def test_closed_handle_not_counted(self):
        registry = SubscriptionRegistry()
        handle = registry.register("bob")
        # 模拟快照取出后句柄被关闭
        handle.close(CloseReason.CANCELLED)

        result = Dispatcher(registry).publish(_msg(1))
        assert result == DispatchResult(delivered=0, dropped=0)

    def test_faulty_handle_isolated(self, monkeypatch):
        registry = SubscriptionRegistry()
        broken = registry.register("bob")
        healthy = registry.register("bob")

        def _boom(message):
            raise RuntimeError("offer failed")

        monkeypatch.setattr(broken, "offer", _boom)

        result = Dispatcher(registry).publish(_msg(1))

        assert result == DispatchResult(delivered=1, dropped=1)
        assert healthy.buffered == 1
