"""集成测试共享 fixture"""

import os
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mailslot.core.config import MessagingConfig
from mailslot.core.store import create_store_group
from mailslot.gateway.services.messaging_service import MessagingService
from mailslot.gateway.services.subscription_registry import SubscriptionRegistry
from sse_starlette.sse import AppStatus


@pytest.fixture(autouse=True)
def _reset_sse_app_status():
    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None
    yield


@pytest_asyncio.fixture
async def integration_app(tmp_path: Path):
    """集成测试用 FastAPI app（完整中间件栈，手动组装服务）"""
    os.environ["MAILSLOT_DB_PATH"] = str(tmp_path / "test.db")
    os.environ["LOGFIRE_SEND_TO_LOGFIRE"] = "false"

    from mailslot.gateway.main import create_app

    app = create_app()

    config = MessagingConfig(subscription_buffer_size=8, history_max_limit=20)
    store_group = await create_store_group(str(tmp_path / "test.db"), config)
    registry = SubscriptionRegistry(buffer_size=config.subscription_buffer_size)
    app.state.store_group = store_group
    app.state.messaging_service = MessagingService(
        store=store_group.message_store,
        registry=registry,
        config=config,
    )

    yield app

    await app.state.messaging_service.close()
    await store_group.close()
    os.environ.pop("MAILSLOT_DB_PATH", None)
    os.environ.pop("LOGFIRE_SEND_TO_LOGFIRE", None)


@pytest_asyncio.fixture
async def client(integration_app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=integration_app),
        base_url="http://test",
    ) as ac:
        yield ac
