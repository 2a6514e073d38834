"""SQLite 数据库初始化

PRAGMA 配置 + messages 表 DDL + 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# messages 表 DDL：(receiver, id) 联合主键保证同一接收者内 id 唯一
_MESSAGES_DDL = """
CREATE TABLE IF NOT EXISTS messages (
    receiver        TEXT NOT NULL,
    id              INTEGER NOT NULL,
    sender          TEXT NOT NULL,
    content         TEXT NOT NULL,
    attachment_ref  TEXT,
    ts              TEXT NOT NULL,

    PRIMARY KEY (receiver, id)
);
"""

_MESSAGES_INDEXES = [
    # 接收者消息流内时间索引（仅供展示/排查，排序只用 id）
    "CREATE INDEX IF NOT EXISTS idx_messages_receiver_ts ON messages(receiver, ts);",
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    # 设置 PRAGMA
    await conn.execute("PRAGMA journal_mode = WAL;")
    # 每次提交都 fsync，追加返回即已落盘
    await conn.execute("PRAGMA synchronous = FULL;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    # 创建表
    await conn.execute(_MESSAGES_DDL)

    # 创建索引
    for idx_sql in _MESSAGES_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
