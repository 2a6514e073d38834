"""InboxContextMiddleware

收件箱相关请求绑定 receiver 到 structlog contextvars，
贯穿历史查询与实时订阅的日志。
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response


def extract_receiver(path: str) -> str | None:
    """从 /api/inbox/{receiver}/... 或 /api/stream/inbox/{receiver} 提取 receiver"""
    parts = [p for p in path.split("/") if p]
    for i, part in enumerate(parts):
        if part == "inbox" and i + 1 < len(parts):
            return parts[i + 1]
    return None


class InboxContextMiddleware(BaseHTTPMiddleware):
    """收件箱上下文中间件"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        receiver = extract_receiver(request.url.path)
        if receiver:
            structlog.contextvars.bind_contextvars(receiver=receiver)

        return await call_next(request)
