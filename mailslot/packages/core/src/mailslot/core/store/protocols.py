"""Store Protocol 接口定义

定义 MessageStore 的抽象接口，
使用 Python Protocol 实现结构化子类型（duck typing）。
"""

from collections.abc import AsyncIterator, Callable
from typing import Protocol

from ..models.message import Message, NewMessage


class MessageStore(Protocol):
    """Message 存储接口

    消息表 append-only：只允许插入，不允许更新或删除。
    """

    @property
    def closed(self) -> bool:
        """存储是否已关闭"""
        ...

    def close(self) -> None:
        """关闭存储，后续调用抛出 ClosedError"""
        ...

    async def append(
        self,
        draft: NewMessage,
        on_persisted: Callable[[Message], None] | None = None,
    ) -> Message:
        """追加消息，分配 id 与 timestamp"""
        ...

    async def query(
        self,
        receiver: str,
        after_id: int = 0,
        limit: int | None = None,
    ) -> list[Message]:
        """查询 id > after_id 的消息，按 id 正序；limit 缺省取配置的默认页大小"""
        ...

    def iter_messages(
        self,
        receiver: str,
        after_id: int = 0,
        page_size: int = 100,
    ) -> AsyncIterator[Message]:
        """按页惰性遍历消息"""
        ...

    async def head_id(self, receiver: str) -> int:
        """获取 receiver 当前最大 id"""
        ...
