"""Mailslot Core Store -- SQLite 持久化实现

提供工厂函数创建共享数据库连接的 Store 实例组。
"""

from pathlib import Path

import aiosqlite

from ..config import MessagingConfig
from .message_store import SqliteMessageStore, complete_shielded
from .protocols import MessageStore
from .sqlite_init import init_db


class StoreGroup:
    """Store 实例组 -- 共享同一个数据库连接"""

    def __init__(
        self,
        conn: aiosqlite.Connection,
        config: MessagingConfig | None = None,
    ) -> None:
        self.conn = conn
        self.message_store = SqliteMessageStore(conn, config)

    async def close(self) -> None:
        """关闭 message_store 并释放数据库连接"""
        self.message_store.close()
        await self.conn.close()


async def create_store_group(
    db_path: str,
    config: MessagingConfig | None = None,
) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径
        config: 消息服务配置，None 时使用默认值

    Returns:
        StoreGroup 实例
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    # autocommit：每条写入语句独立提交
    conn = await aiosqlite.connect(db_path, isolation_level=None)
    await init_db(conn)

    return StoreGroup(conn=conn, config=config)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "MessageStore",
    "SqliteMessageStore",
    "init_db",
    "complete_shielded",
]
