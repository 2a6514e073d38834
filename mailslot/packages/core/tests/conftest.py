"""packages/core 测试配置 -- 核心层 fixture"""

from collections.abc import AsyncGenerator

import aiosqlite
import pytest_asyncio
from mailslot.core.config import MessagingConfig
from mailslot.core.store.message_store import SqliteMessageStore


@pytest_asyncio.fixture
async def core_config() -> MessagingConfig:
    """核心层测试配置：较小的正文上限便于覆盖超长校验"""
    return MessagingConfig(content_max_bytes=16, attachment_ref_max_length=32)


@pytest_asyncio.fixture
async def message_store(
    db_conn: aiosqlite.Connection, core_config: MessagingConfig
) -> AsyncGenerator[SqliteMessageStore, None]:
    """基于临时数据库的 MessageStore"""
    store = SqliteMessageStore(db_conn, core_config)
    yield store
    store.close()
