"""收件箱历史路由

GET /api/inbox/{receiver}/messages: 按 id 正序分页查询 receiver 的历史消息。
"""

from fastapi import APIRouter, Depends, Query
from mailslot.core.exceptions import MessagingError

from ..deps import get_messaging_service
from ..errors import error_response

router = APIRouter()


@router.get("/api/inbox/{receiver}/messages")
async def list_inbox_messages(
    receiver: str,
    after_id: int = Query(default=0, description="只返回 id 大于此值的消息"),
    limit: int | None = Query(default=None, description="分页大小，缺省用服务默认值"),
    service=Depends(get_messaging_service),
):
    """查询历史消息；next_cursor 可直接作为下一页的 after_id"""
    try:
        page = await service.history(receiver, after_id=after_id, limit=limit)
    except MessagingError as e:
        return error_response(e)

    return {
        "receiver": page.receiver,
        "messages": [m.model_dump(mode="json") for m in page.messages],
        "next_cursor": page.next_cursor,
        "has_more": page.has_more,
    }
