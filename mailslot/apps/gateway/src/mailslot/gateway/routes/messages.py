"""消息发送路由

POST /api/messages: 以 X-Caller-Handle 身份向 receiver 发送消息。
- 201: 已持久化，返回消息（含 id/timestamp）
- 400: 缺少 receiver
- 401: 缺少调用方身份
- 422: 正文为空或超长
- 503: 服务关闭或存储失败
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Header
from mailslot.core.exceptions import MessagingError
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from ..deps import get_messaging_service
from ..errors import error_response

router = APIRouter()


class SendMessageRequest(BaseModel):
    """消息发送请求体"""

    receiver: str = Field(default="", description="接收者 handle")
    content: str = Field(default="", description="消息文本")
    attachment_ref: str | None = Field(
        default=None,
        description="blob store 返回的附件引用",
    )


class MessageResponse(BaseModel):
    """已持久化消息"""

    id: int
    receiver: str
    sender: str
    content: str
    attachment_ref: str | None
    timestamp: datetime


@router.post("/api/messages", response_model=MessageResponse)
async def send_message(
    body: SendMessageRequest,
    x_caller_handle: str = Header(
        default="",
        description="身份提供方断言的调用方 handle",
    ),
    service=Depends(get_messaging_service),
):
    """发送消息，返回已持久化的消息"""
    try:
        message = await service.send(
            sender=x_caller_handle,
            receiver=body.receiver,
            content=body.content,
            attachment_ref=body.attachment_ref,
        )
    except MessagingError as e:
        return error_response(e)

    return JSONResponse(
        status_code=201,
        content=MessageResponse.model_validate(message.model_dump()).model_dump(
            mode="json"
        ),
    )
