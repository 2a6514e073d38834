"""订阅与通知相关的事件模型"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class GapNotice(BaseModel):
    """实时投递缺口通知

    订阅缓冲区满导致投递被丢弃后，订阅者下一次读取时收到此通知，
    应从 after_id 开始回补，至少补到 head_id。
    """

    model_config = ConfigDict(frozen=True)

    receiver: str = Field(description="接收者 handle")
    after_id: int = Field(description="最后一条已投递消息的 id")
    head_id: int = Field(description="被丢弃的最大消息 id")


class MessagePersisted(BaseModel):
    """消息持久化事件 -- 供离线通知等外部订阅方消费

    每条持久化消息恰好触发一次，在持久化之后、Send 返回之前。
    """

    model_config = ConfigDict(frozen=True)

    receiver: str = Field(description="接收者 handle")
    message_id: int = Field(description="消息 id")
    sender: str = Field(description="发送者 handle")
    timestamp: datetime = Field(description="消息时间戳")
