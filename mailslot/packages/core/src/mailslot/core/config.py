"""配置模块 -- 可通过环境变量覆盖

包含数据库路径，以及消息大小上限、分页大小、订阅缓冲区等运行参数。
"""

import os
from pathlib import Path

import structlog
from pydantic import BaseModel, Field

log = structlog.get_logger()


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("MAILSLOT_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "MAILSLOT_DB_PATH",
        str(_get_base_dir() / "sqlite" / "mailslot.db"),
    )


class MessagingConfig(BaseModel):
    """消息服务运行配置 -- 从环境变量加载

    环境变量:
        MAILSLOT_CONTENT_MAX_BYTES: 消息正文最大字节数（UTF-8）
        MAILSLOT_ATTACHMENT_REF_MAX_LENGTH: 附件引用最大长度
        MAILSLOT_HISTORY_DEFAULT_LIMIT: 历史查询默认分页大小
        MAILSLOT_HISTORY_MAX_LIMIT: 历史查询分页上限
        MAILSLOT_SUBSCRIPTION_BUFFER_SIZE: 每个订阅的缓冲区容量
        MAILSLOT_SSE_PING_INTERVAL: SSE 心跳间隔（秒）
    """

    content_max_bytes: int = Field(default=8192, ge=1, description="正文最大字节数")
    attachment_ref_max_length: int = Field(
        default=2048, ge=1, description="附件引用最大长度"
    )
    history_default_limit: int = Field(default=50, ge=1, description="默认分页大小")
    history_max_limit: int = Field(default=200, ge=1, description="分页大小上限")
    subscription_buffer_size: int = Field(
        default=100, ge=1, description="订阅缓冲区容量"
    )
    sse_ping_interval: int = Field(default=15, ge=1, description="SSE 心跳间隔（秒）")


# 环境变量 -> 配置字段
_ENV_FIELDS: dict[str, str] = {
    "MAILSLOT_CONTENT_MAX_BYTES": "content_max_bytes",
    "MAILSLOT_ATTACHMENT_REF_MAX_LENGTH": "attachment_ref_max_length",
    "MAILSLOT_HISTORY_DEFAULT_LIMIT": "history_default_limit",
    "MAILSLOT_HISTORY_MAX_LIMIT": "history_max_limit",
    "MAILSLOT_SUBSCRIPTION_BUFFER_SIZE": "subscription_buffer_size",
    "MAILSLOT_SSE_PING_INTERVAL": "sse_ping_interval",
}


def load_messaging_config() -> MessagingConfig:
    """从环境变量加载消息服务配置

    非法整数值记录 warning 并使用默认值，不阻塞启动。

    Returns:
        MessagingConfig 实例
    """
    defaults = MessagingConfig()
    kwargs: dict = {}

    for env_var, field_name in _ENV_FIELDS.items():
        val = os.environ.get(env_var)
        if not val:
            continue
        try:
            parsed = int(val)
        except ValueError:
            parsed = None
        if parsed is None or parsed < 1:
            log.warning(
                "invalid_messaging_config",
                env_var=env_var,
                value=val,
                fallback=getattr(defaults, field_name),
            )
            continue
        kwargs[field_name] = parsed

    config = MessagingConfig(**kwargs)
    if config.history_default_limit > config.history_max_limit:
        log.warning(
            "history_default_limit_clamped",
            default_limit=config.history_default_limit,
            max_limit=config.history_max_limit,
        )
        config = config.model_copy(
            update={"history_default_limit": config.history_max_limit}
        )
    return config
