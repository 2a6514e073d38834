"""Mailslot Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .enums import (
    VALID_TRANSITIONS,
    CloseReason,
    SubscriptionState,
    validate_transition,
)
from .events import GapNotice, MessagePersisted
from .message import HistoryPage, Message, NewMessage

__all__ = [
    # 枚举
    "SubscriptionState",
    "CloseReason",
    # 状态机
    "VALID_TRANSITIONS",
    "validate_transition",
    # Message
    "Message",
    "NewMessage",
    "HistoryPage",
    # 事件
    "GapNotice",
    "MessagePersisted",
]
