"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化、消息服务组装、路由注册；
关闭时先关闭全部实时订阅和存储，再释放数据库连接。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from mailslot.core.config import get_db_path, load_messaging_config
from mailslot.core.store import create_store_group

from .middleware.inbox_context_mw import InboxContextMiddleware
from .middleware.logging_config import setup_logfire, setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .routes import health, inbox, messages, stream
from .services.dispatcher import Dispatcher
from .services.messaging_service import MessagingService
from .services.subscription_registry import SubscriptionRegistry

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化存储与服务，关闭时按序清理"""
    config = load_messaging_config()
    db_path = get_db_path()
    store_group = await create_store_group(db_path, config)
    app.state.store_group = store_group

    registry = SubscriptionRegistry(buffer_size=config.subscription_buffer_size)
    app.state.messaging_service = MessagingService(
        store=store_group.message_store,
        registry=registry,
        dispatcher=Dispatcher(registry),
        config=config,
    )
    log.info(
        "messaging_service_initialized",
        db_path=db_path,
        content_max_bytes=config.content_max_bytes,
        subscription_buffer_size=config.subscription_buffer_size,
    )

    yield

    await app.state.messaging_service.close()
    await store_group.close()


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="Mailslot Gateway",
        version="0.1.0",
        description="定向消息：历史查询 + 实时推送",
        lifespan=lifespan,
    )

    # 注册中间件（后注册的在外层：Logging 先清理并绑定 request_id）
    app.add_middleware(InboxContextMiddleware)
    app.add_middleware(LoggingMiddleware)

    setup_logging()
    setup_logfire()

    app.include_router(messages.router, tags=["messages"])
    app.include_router(inbox.router, tags=["inbox"])
    app.include_router(stream.router, tags=["stream"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
