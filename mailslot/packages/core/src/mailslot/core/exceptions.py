"""消息服务异常体系

每个异常携带稳定的 code，供传输层映射为错误响应。
"""


class MessagingError(Exception):
    """消息服务基础异常"""

    code = "MESSAGING_ERROR"

    def __init__(self, message: str, retryable: bool = False) -> None:
        """
        Args:
            message: 错误描述
            retryable: 调用方是否可以重试
        """
        super().__init__(message)
        self.message = message
        self.retryable = retryable


class ValidationError(MessagingError):
    """输入不合法：空正文、正文超长、分页参数越界等

    总是直接报告给调用方，不自动重试。
    """

    code = "VALIDATION_ERROR"


class SenderRequiredError(ValidationError):
    """缺少发送者身份（身份提供方未给出 caller handle）"""

    code = "SENDER_REQUIRED"

    def __init__(self, message: str = "sender handle is required") -> None:
        super().__init__(message)


class ReceiverRequiredError(MessagingError):
    """缺少接收者"""

    code = "RECEIVER_REQUIRED"

    def __init__(self, message: str = "receiver handle is required") -> None:
        super().__init__(message)


class ClosedError(MessagingError):
    """服务或存储已关闭

    对当前实例不可重试。
    """

    code = "SERVICE_CLOSED"

    def __init__(self, message: str = "messaging service is closed") -> None:
        super().__init__(message, retryable=False)


class StorageError(MessagingError):
    """持久化写入/读取失败

    仅当调用方尚未观察到持久化结果时可重试；Send 不是天然幂等的，
    重试可能产生重复消息。
    """

    code = "STORAGE_ERROR"

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        """
        Args:
            message: 错误描述
            original_error: 原始异常
        """
        super().__init__(message, retryable=True)
        self.original_error = original_error
