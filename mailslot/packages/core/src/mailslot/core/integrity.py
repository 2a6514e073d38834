"""消息流完整性检查

逐个 receiver 校验 id 是否从 1 开始且连续无空洞：
(receiver, id) 唯一，因此 min_id == 1 且 max_id == count 即为稠密。
"""

import time

import structlog
from pydantic import BaseModel, Field

from .store.message_store import SqliteMessageStore

log = structlog.get_logger()


class StreamReport(BaseModel):
    """单个 receiver 消息流的检查结果"""

    receiver: str = Field(description="接收者 handle")
    count: int = Field(description="消息条数")
    min_id: int = Field(description="最小 id")
    max_id: int = Field(description="最大 id")

    @property
    def is_dense(self) -> bool:
        return self.min_id == 1 and self.max_id == self.count

    @property
    def missing_count(self) -> int:
        return self.max_id - self.count


async def verify_streams(store: SqliteMessageStore) -> list[StreamReport]:
    """检查所有 receiver 消息流

    Args:
        store: MessageStore 实例

    Returns:
        每个 receiver 一条 StreamReport，按 receiver 排序
    """
    start_time = time.monotonic()

    summaries = await store.get_stream_summaries()
    reports = [
        StreamReport(receiver=receiver, count=count, min_id=min_id, max_id=max_id)
        for receiver, count, min_id, max_id in summaries
    ]

    broken = [r for r in reports if not r.is_dense]
    for report in broken:
        await log.awarning(
            "stream_not_dense",
            receiver=report.receiver,
            count=report.count,
            min_id=report.min_id,
            max_id=report.max_id,
        )

    elapsed_ms = int((time.monotonic() - start_time) * 1000)
    await log.ainfo(
        "stream_check_completed",
        stream_count=len(reports),
        broken_count=len(broken),
        elapsed_ms=elapsed_ms,
    )
    return reports
