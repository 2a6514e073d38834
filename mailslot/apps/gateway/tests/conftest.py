"""apps/gateway 测试配置 -- 服务组装 + httpx AsyncClient fixture"""

import os
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mailslot.core.config import MessagingConfig
from mailslot.core.store import StoreGroup, create_store_group
from mailslot.gateway.services.messaging_service import MessagingService
from mailslot.gateway.services.subscription_registry import SubscriptionRegistry
from sse_starlette.sse import AppStatus


@pytest.fixture(autouse=True)
def _reset_sse_app_status():
    """sse-starlette 的退出事件在类属性上缓存，跨事件循环复用会报错"""
    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None
    yield


@pytest_asyncio.fixture
async def messaging_config() -> MessagingConfig:
    """测试配置：小缓冲区 + 小分页，便于覆盖落后与多页回补"""
    return MessagingConfig(
        content_max_bytes=64,
        history_default_limit=3,
        history_max_limit=5,
        subscription_buffer_size=4,
    )


@pytest_asyncio.fixture
async def store_group(
    tmp_path: Path, messaging_config: MessagingConfig
) -> AsyncGenerator[StoreGroup, None]:
    sg = await create_store_group(str(tmp_path / "test.db"), messaging_config)
    yield sg
    await sg.close()


@pytest_asyncio.fixture
async def registry(messaging_config: MessagingConfig) -> SubscriptionRegistry:
    return SubscriptionRegistry(buffer_size=messaging_config.subscription_buffer_size)


@pytest_asyncio.fixture
async def service(
    store_group: StoreGroup,
    registry: SubscriptionRegistry,
    messaging_config: MessagingConfig,
) -> AsyncGenerator[MessagingService, None]:
    svc = MessagingService(
        store=store_group.message_store,
        registry=registry,
        config=messaging_config,
    )
    yield svc
    await svc.close()


@pytest_asyncio.fixture
async def test_app(tmp_path: Path, store_group: StoreGroup, service: MessagingService):
    """创建测试用 FastAPI app（绕过 lifespan，手动注入 state）"""
    os.environ["MAILSLOT_DB_PATH"] = str(tmp_path / "test.db")
    os.environ["LOGFIRE_SEND_TO_LOGFIRE"] = "false"

    from mailslot.gateway.main import create_app

    app = create_app()
    app.state.store_group = store_group
    app.state.messaging_service = service

    yield app

    for key in ["MAILSLOT_DB_PATH", "LOGFIRE_SEND_TO_LOGFIRE"]:
        os.environ.pop(key, None)


@pytest_asyncio.fixture
async def client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient 用于测试"""
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac
