"""SSE 收件箱实时流路由

GET /api/stream/inbox/{receiver}: SSE 推送 receiver 的消息。
先回补 Last-Event-ID（或 ?last_id=）之后的历史，再实时推送新消息。
SSE id 即消息 id，断线重连时浏览器自动带回 Last-Event-ID。
"""

import json
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, Query, Request
from mailslot.core.exceptions import ClosedError, MessagingError, ValidationError
from mailslot.core.models import Message
from sse_starlette.sse import EventSourceResponse

from ..deps import get_messaging_service
from ..errors import error_response
from ..services.messaging_service import MessagingService

router = APIRouter()


def _message_to_sse(message: Message) -> dict:
    """将 Message 转换为 SSE 帧"""
    return {
        "id": str(message.id),
        "event": "message",
        "data": json.dumps(message.model_dump(mode="json"), ensure_ascii=False),
    }


def _closed_frame(last_id: int) -> dict:
    return {
        "event": "closed",
        "data": json.dumps({"reason": "shutdown", "last_id": last_id}),
    }


async def feed_events(
    service: MessagingService,
    receiver: str,
    last_known_id: int = 0,
) -> AsyncIterator[dict]:
    """订阅 receiver 并将 LiveFeed 转为 SSE 帧；服务关闭时发送 closed 帧后结束

    订阅在首次迭代时才登记：响应体从未开始迭代（客户端在首帧前断开）
    时不会留下句柄。
    """
    try:
        feed = await service.subscribe(receiver, last_known_id)
    except ClosedError:
        yield _closed_frame(last_known_id)
        return

    try:
        async for message in feed:
            yield _message_to_sse(message)
    except ClosedError:
        yield _closed_frame(feed.last_id)
    finally:
        # 客户端断开时生成器被取消，同样注销订阅
        feed.cancel()


def _resolve_last_known_id(last_event_id: str | None, last_id: int | None) -> int:
    if last_event_id:
        try:
            return int(last_event_id)
        except ValueError:
            raise ValidationError(
                f"Last-Event-ID must be a message id, got {last_event_id!r}"
            ) from None
    return last_id or 0


@router.get("/api/stream/inbox/{receiver}")
async def stream_inbox(
    receiver: str,
    request: Request,
    last_id: int | None = Query(default=None, description="调用方已看到的最大消息 id"),
    service=Depends(get_messaging_service),
):
    """SSE 事件流端点

    1. 同步校验参数（错误以 JSON 返回）
    2. 响应开始后登记订阅，回补 last_known_id 之后的历史消息
    3. 实时推送新消息（按 id 递增，不重复）
    4. 服务关闭时推送 closed 帧
    """
    try:
        last_known_id = _resolve_last_known_id(
            request.headers.get("last-event-id"), last_id
        )
        service.check_subscription(receiver, last_known_id)
    except MessagingError as e:
        return error_response(e)

    return EventSourceResponse(
        feed_events(service, receiver, last_known_id),
        ping=service.config.sse_ping_interval,
    )
