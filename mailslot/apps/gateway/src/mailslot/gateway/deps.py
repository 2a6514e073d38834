"""依赖注入模块 -- 通过 FastAPI Depends 注入服务实例

实例通过 app.state 管理，在 lifespan 中初始化/清理。
"""

from fastapi import Request
from mailslot.core.store import StoreGroup

from .services.messaging_service import MessagingService


def get_store_group(request: Request) -> StoreGroup:
    """从 app.state 获取 StoreGroup 实例"""
    return request.app.state.store_group


def get_messaging_service(request: Request) -> MessagingService:
    """从 app.state 获取 MessagingService 实例"""
    return request.app.state.messaging_service
