"""MessagingService -- 发送/历史/订阅业务逻辑

发送流程：
1. 校验发送者 handle（由身份提供方给出，此处不重新认证）
2. MessageStore.append 分配 id/timestamp 并持久化
3. 仍持有 receiver 锁时 Dispatcher.publish 扇出到实时订阅
4. 逐个通知 MessagePersisted 监听方（离线推送等）
5. 返回已持久化的消息
"""

from collections.abc import Awaitable, Callable

import structlog
from mailslot.core.config import MessagingConfig
from mailslot.core.exceptions import (
    ClosedError,
    ReceiverRequiredError,
    SenderRequiredError,
    ValidationError,
)
from mailslot.core.models import HistoryPage, Message, MessagePersisted, NewMessage
from mailslot.core.store import MessageStore, complete_shielded

from .dispatcher import Dispatcher
from .live_feed import LiveFeed
from .subscription_registry import SubscriptionRegistry

log = structlog.get_logger()

PersistedListener = Callable[[MessagePersisted], Awaitable[None]]


class MessagingService:
    """消息业务服务 -- 组合 MessageStore、SubscriptionRegistry、Dispatcher"""

    def __init__(
        self,
        store: MessageStore,
        registry: SubscriptionRegistry,
        dispatcher: Dispatcher | None = None,
        config: MessagingConfig | None = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._dispatcher = dispatcher or Dispatcher(registry)
        self._config = config or MessagingConfig()
        self._listeners: list[PersistedListener] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    @property
    def config(self) -> MessagingConfig:
        return self._config

    def add_listener(self, listener: PersistedListener) -> None:
        """注册 MessagePersisted 监听方"""
        self._listeners.append(listener)

    async def send(
        self,
        sender: str,
        receiver: str,
        content: str,
        attachment_ref: str | None = None,
    ) -> Message:
        """发送消息

        Returns:
            已持久化的消息（含 id/timestamp），发送方可直接渲染，无需等待实时回显

        Raises:
            SenderRequiredError: 缺少发送者
            ReceiverRequiredError: 缺少接收者
            ValidationError: 正文为空或超长
            ClosedError: 服务已关闭
            StorageError: 持久化失败
        """
        if self._closed:
            raise ClosedError()
        if not sender or not sender.strip():
            raise SenderRequiredError()

        draft = NewMessage(
            sender=sender,
            receiver=receiver,
            content=content,
            attachment_ref=attachment_ref,
        )
        # 调用方取消时，已开始的写入仍完成扇出与通知
        message = await complete_shielded(self._append_and_notify(draft))

        log.info(
            "message_sent",
            receiver=message.receiver,
            message_id=message.id,
            sender=message.sender,
            has_attachment=message.attachment_ref is not None,
        )
        return message

    async def history(
        self,
        receiver: str,
        after_id: int = 0,
        limit: int | None = None,
    ) -> HistoryPage:
        """查询 receiver 的历史消息（按 id 正序分页）

        Raises:
            ReceiverRequiredError: 缺少接收者
            ValidationError: limit 越界或 after_id 为负
        """
        if not receiver:
            raise ReceiverRequiredError()
        effective_limit = self._config.history_default_limit if limit is None else limit
        if effective_limit < 1 or effective_limit > self._config.history_max_limit:
            raise ValidationError(
                f"limit must be between 1 and {self._config.history_max_limit}, "
                f"got {effective_limit}"
            )
        if after_id < 0:
            raise ValidationError(f"after_id must not be negative, got {after_id}")
        if self._closed:
            raise ClosedError()

        # 多取一条用于判断 has_more
        rows = await self._store.query(receiver, after_id, effective_limit + 1)
        messages = rows[:effective_limit]
        return HistoryPage(
            receiver=receiver,
            messages=messages,
            next_cursor=messages[-1].id if messages else after_id,
            has_more=len(rows) > effective_limit,
        )

    async def subscribe(self, receiver: str, last_known_id: int = 0) -> LiveFeed:
        """订阅 receiver 的实时消息流

        句柄在返回前已登记，因此先于回补查询生效；
        LiveFeed 先回补 last_known_id 之后的历史，再转为实时尾随。

        Raises:
            ReceiverRequiredError: 缺少接收者
            ValidationError: last_known_id 为负
            ClosedError: 服务已关闭
        """
        self.check_subscription(receiver, last_known_id)

        handle = self._registry.register(receiver)
        return LiveFeed(
            handle,
            self._store,
            last_known_id=last_known_id,
            page_size=self._config.history_max_limit,
        )

    def check_subscription(self, receiver: str, last_known_id: int = 0) -> None:
        """校验订阅参数但不登记句柄（SSE 路由在响应开始前同步报错）"""
        if not receiver:
            raise ReceiverRequiredError()
        if last_known_id < 0:
            raise ValidationError(
                f"last_known_id must not be negative, got {last_known_id}"
            )
        if self._closed:
            raise ClosedError()

    async def close(self) -> None:
        """关闭服务：关闭全部订阅，再关闭存储（幂等）"""
        if self._closed:
            return
        self._closed = True
        self._registry.close_all()
        self._store.close()
        log.info("messaging_service_closed")

    async def _append_and_notify(self, draft: NewMessage) -> Message:
        message = await self._store.append(draft, on_persisted=self._publish)
        await self._notify_persisted(message)
        return message

    def _publish(self, message: Message) -> None:
        self._dispatcher.publish(message)

    async def _notify_persisted(self, message: Message) -> None:
        """每条持久化消息恰好通知一次；监听方失败不回滚发送"""
        event = MessagePersisted(
            receiver=message.receiver,
            message_id=message.id,
            sender=message.sender,
            timestamp=message.timestamp,
        )
        for listener in list(self._listeners):
            try:
                await listener(event)
            except Exception as e:
                log.error(
                    "persisted_listener_failed",
                    receiver=message.receiver,
                    message_id=message.id,
                    error_type=type(e).__name__,
                )
