"""错误响应 -- MessagingError -> JSON 错误体

响应格式: {"error": {"code": ..., "message": ...}}
"""

from mailslot.core.exceptions import (
    ClosedError,
    MessagingError,
    ReceiverRequiredError,
    SenderRequiredError,
    StorageError,
    ValidationError,
)
from starlette.responses import JSONResponse

# 顺序敏感：子类在前
_STATUS_BY_ERROR: list[tuple[type[MessagingError], int]] = [
    (SenderRequiredError, 401),
    (ReceiverRequiredError, 400),
    (ValidationError, 422),
    (ClosedError, 503),
    (StorageError, 503),
]


def status_for(error: MessagingError) -> int:
    """异常对应的 HTTP 状态码"""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return 500


def error_response(error: MessagingError) -> JSONResponse:
    """构建错误响应"""
    return JSONResponse(
        status_code=status_for(error),
        content={
            "error": {
                "code": error.code,
                "message": error.message,
            }
        },
    )
