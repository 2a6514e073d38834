"""枚举定义

包含订阅句柄状态机 SubscriptionState、关闭原因 CloseReason，
以及 VALID_TRANSITIONS 合法流转映射。
"""

from enum import StrEnum


class SubscriptionState(StrEnum):
    """订阅句柄状态机

    Created -> Backfilling -> Live -> (Behind <-> Live) -> Closed
    """

    CREATED = "CREATED"
    BACKFILLING = "BACKFILLING"
    LIVE = "LIVE"
    BEHIND = "BEHIND"
    CLOSED = "CLOSED"


class CloseReason(StrEnum):
    """订阅关闭原因"""

    CANCELLED = "cancelled"
    SHUTDOWN = "shutdown"


# 合法状态流转；CLOSED 可从任意状态进入
VALID_TRANSITIONS: dict[SubscriptionState, set[SubscriptionState]] = {
    SubscriptionState.CREATED: {
        SubscriptionState.BACKFILLING,
        SubscriptionState.LIVE,
        SubscriptionState.BEHIND,
        SubscriptionState.CLOSED,
    },
    SubscriptionState.BACKFILLING: {
        SubscriptionState.LIVE,
        SubscriptionState.BEHIND,
        SubscriptionState.CLOSED,
    },
    SubscriptionState.LIVE: {
        SubscriptionState.BEHIND,
        SubscriptionState.CLOSED,
    },
    SubscriptionState.BEHIND: {
        SubscriptionState.LIVE,
        SubscriptionState.CLOSED,
    },
    # 终态不可再流转
    SubscriptionState.CLOSED: set(),
}


def validate_transition(
    from_state: SubscriptionState, to_state: SubscriptionState
) -> bool:
    """验证状态流转是否合法

    Args:
        from_state: 当前状态
        to_state: 目标状态

    Returns:
        True 如果流转合法，否则 False
    """
    allowed = VALID_TRANSITIONS.get(from_state, set())
    return to_state in allowed
