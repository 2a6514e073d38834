"""Message Domain Model

消息一经写入即不可变。
id 在同一 receiver 的消息流内从 1 开始严格单调递增、无空洞。
timestamp 由存储层在追加时赋值，仅供展示，不参与排序。
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class NewMessage(BaseModel):
    """待追加的消息草稿 -- 不含 id 和 timestamp，调用方无法伪造顺序"""

    sender: str = Field(default="", description="发送者 handle")
    receiver: str = Field(default="", description="接收者 handle")
    content: str = Field(default="", description="文本内容")
    attachment_ref: str | None = Field(
        default=None,
        description="blob store 返回的附件引用",
    )


class Message(BaseModel):
    """已持久化的消息

    append-only，不允许更新或删除。
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(description="接收者消息流内序号，严格单调递增")
    receiver: str = Field(description="接收者 handle")
    sender: str = Field(description="发送者 handle")
    content: str = Field(description="文本内容")
    attachment_ref: str | None = Field(default=None, description="附件引用")
    timestamp: datetime = Field(description="追加时间（存储层赋值）")


class HistoryPage(BaseModel):
    """历史查询分页结果"""

    receiver: str = Field(description="接收者 handle")
    messages: list[Message] = Field(default_factory=list, description="按 id 正序")
    next_cursor: int = Field(
        description="下一页的 after_id；本页为空时等于请求的 after_id",
    )
    has_more: bool = Field(default=False, description="是否还有后续消息")
