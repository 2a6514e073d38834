"""MessageStore SQLite 实现

messages 表 append-only：只允许插入，不允许更新或删除。
同一 receiver 内 id 从 1 开始严格单调递增、无空洞、无重复。
追加在 receiver 级别串行化；不同 receiver 之间互不阻塞。
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TypeVar

import aiosqlite
import structlog

from ..config import MessagingConfig
from ..exceptions import (
    ClosedError,
    ReceiverRequiredError,
    SenderRequiredError,
    StorageError,
    ValidationError,
)
from ..models.message import Message, NewMessage

log = structlog.get_logger()

_SELECT_COLUMNS = "id, receiver, sender, content, attachment_ref, ts"

T = TypeVar("T")


async def complete_shielded(aw: Awaitable[T]) -> T:
    """运行 aw 直至结束，不受调用方取消影响

    调用方被取消时，先等待 aw 完成，再向调用方传播 CancelledError。
    写入一旦提交给 aiosqlite 就会落盘，其后续步骤（发布、通知）必须随之完成。
    """
    task = asyncio.ensure_future(aw)
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        while not task.done():
            try:
                await asyncio.wait({task})
            except asyncio.CancelledError:
                continue
        if not task.cancelled() and task.exception() is not None:
            log.warning(
                "shielded_operation_failed_after_cancel",
                error_type=type(task.exception()).__name__,
            )
        raise


class _ReceiverLock:
    """receiver 级别锁 + 使用计数，计数归零时从锁表移除"""

    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class SqliteMessageStore:
    """MessageStore 的 SQLite 实现

    create_store_group 以 autocommit 模式打开连接（isolation_level=None），
    每次追加是一条独立的持久化语句，不同 receiver 的写入不会共享事务。
    """

    _max_id_retries = 3

    def __init__(
        self,
        conn: aiosqlite.Connection,
        config: MessagingConfig | None = None,
    ) -> None:
        self._conn = conn
        self._config = config or MessagingConfig()
        self._receiver_locks: dict[str, _ReceiverLock] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """标记存储已关闭；之后开始的以及仍在排队的调用均抛出 ClosedError"""
        if not self._closed:
            self._closed = True
            log.info("message_store_closed", pending_receivers=len(self._receiver_locks))

    async def append(
        self,
        draft: NewMessage,
        on_persisted: Callable[[Message], None] | None = None,
    ) -> Message:
        """追加消息（append-only）

        分配 id 与 timestamp 并持久化。on_persisted 在写入成功后、
        仍持有 receiver 锁时同步调用，因此回调看到的顺序与 id 顺序一致。
        写入开始后调用方被取消，写入与回调仍会完成，之后才传播取消。

        Raises:
            ReceiverRequiredError: 缺少 receiver
            SenderRequiredError: 缺少 sender
            ValidationError: 正文为空或超长、附件引用超长
            ClosedError: 存储已关闭
            StorageError: 持久化失败
        """
        self._validate(draft)
        self._ensure_open()

        async with self._hold_receiver(draft.receiver):
            # 排队期间可能已关闭
            self._ensure_open()
            for attempt in range(1, self._max_id_retries + 1):
                next_id = await self.head_id(draft.receiver) + 1
                message = Message(
                    id=next_id,
                    receiver=draft.receiver,
                    sender=draft.sender,
                    content=draft.content,
                    attachment_ref=draft.attachment_ref or None,
                    timestamp=datetime.now(UTC),
                )
                try:
                    return await complete_shielded(
                        self._persist(message, on_persisted)
                    )
                except aiosqlite.IntegrityError as e:
                    # 同一数据库文件上的其他写入者抢占了该 id
                    if attempt < self._max_id_retries:
                        log.warning(
                            "message_id_conflict_retry",
                            receiver=draft.receiver,
                            message_id=next_id,
                            attempt=attempt,
                        )
                        continue
                    raise StorageError(
                        "failed to assign message id after retries", e
                    ) from e

        raise StorageError("failed to assign message id after retries")

    async def _persist(
        self,
        message: Message,
        on_persisted: Callable[[Message], None] | None,
    ) -> Message:
        await self._insert(message)
        if on_persisted is not None:
            on_persisted(message)
        return message

    async def query(
        self,
        receiver: str,
        after_id: int = 0,
        limit: int | None = None,
    ) -> list[Message]:
        """查询 receiver 中 id > after_id 的消息，按 id 正序，最多 limit 条

        limit 缺省取 history_default_limit。
        """
        if not receiver:
            raise ReceiverRequiredError()
        if limit is None:
            limit = self._config.history_default_limit
        if limit < 1:
            raise ValidationError(f"limit must be positive, got {limit}")
        self._ensure_open()

        rows = await self._fetchall(
            f"""
            SELECT {_SELECT_COLUMNS} FROM messages
            WHERE receiver = ? AND id > ?
            ORDER BY id ASC
            LIMIT ?
            """,
            (receiver, after_id, limit),
        )
        return [self._row_to_message(row) for row in rows]

    async def iter_messages(
        self,
        receiver: str,
        after_id: int = 0,
        page_size: int = 100,
    ) -> AsyncIterator[Message]:
        """按页惰性遍历 receiver 中 id > after_id 的消息

        遍历是有限的；以最后看到的 id 作为 after_id 再次调用即可从断点继续。
        """
        cursor_id = after_id
        while True:
            page = await self.query(receiver, cursor_id, page_size)
            for message in page:
                yield message
            if len(page) < page_size:
                return
            cursor_id = page[-1].id

    async def head_id(self, receiver: str) -> int:
        """获取 receiver 当前最大 id（无消息时为 0）"""
        self._ensure_open()
        row = await self._fetchone(
            "SELECT COALESCE(MAX(id), 0) FROM messages WHERE receiver = ?",
            (receiver,),
        )
        return row[0] if row else 0

    async def receivers(self) -> list[str]:
        """查询所有已有消息的 receiver"""
        self._ensure_open()
        rows = await self._fetchall(
            "SELECT DISTINCT receiver FROM messages ORDER BY receiver", ()
        )
        return [row[0] for row in rows]

    async def get_stream_summaries(self) -> list[tuple[str, int, int, int]]:
        """按 receiver 汇总 (receiver, count, min_id, max_id)，用于完整性检查"""
        self._ensure_open()
        rows = await self._fetchall(
            """
            SELECT receiver, COUNT(*), MIN(id), MAX(id) FROM messages
            GROUP BY receiver ORDER BY receiver
            """,
            (),
        )
        return [(row[0], row[1], row[2], row[3]) for row in rows]

    def _validate(self, draft: NewMessage) -> None:
        if not draft.receiver or not draft.receiver.strip():
            raise ReceiverRequiredError()
        if not draft.sender or not draft.sender.strip():
            raise SenderRequiredError()
        if not draft.content or not draft.content.strip():
            raise ValidationError("content must not be empty")

        size = len(draft.content.encode("utf-8"))
        if size > self._config.content_max_bytes:
            raise ValidationError(
                f"content exceeds {self._config.content_max_bytes} bytes (got {size})"
            )
        if (
            draft.attachment_ref is not None
            and len(draft.attachment_ref) > self._config.attachment_ref_max_length
        ):
            raise ValidationError(
                "attachment_ref exceeds "
                f"{self._config.attachment_ref_max_length} characters"
            )

    def _ensure_open(self) -> None:
        if self._closed:
            raise ClosedError("message store is closed")

    @asynccontextmanager
    async def _hold_receiver(self, receiver: str) -> AsyncIterator[None]:
        """获取 receiver 级别锁，序列化同一 receiver 的 id 分配"""
        entry = self._receiver_locks.get(receiver)
        if entry is None:
            entry = _ReceiverLock()
            self._receiver_locks[receiver] = entry
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                self._receiver_locks.pop(receiver, None)

    async def _insert(self, message: Message) -> None:
        try:
            await self._conn.execute(
                """
                INSERT INTO messages (receiver, id, sender, content, attachment_ref, ts)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    message.receiver,
                    message.id,
                    message.sender,
                    message.content,
                    message.attachment_ref,
                    message.timestamp.isoformat(),
                ),
            )
            await self._conn.commit()
        except aiosqlite.IntegrityError:
            raise
        except (aiosqlite.Error, ValueError) as e:
            raise self._translate_error("insert", e) from e

    async def _fetchall(self, sql: str, params: tuple) -> list:
        try:
            cursor = await self._conn.execute(sql, params)
            return list(await cursor.fetchall())
        except (aiosqlite.Error, ValueError) as e:
            raise self._translate_error("query", e) from e

    async def _fetchone(self, sql: str, params: tuple):
        try:
            cursor = await self._conn.execute(sql, params)
            return await cursor.fetchone()
        except (aiosqlite.Error, ValueError) as e:
            raise self._translate_error("query", e) from e

    def _translate_error(self, operation: str, error: Exception) -> Exception:
        """连接已关闭 -> ClosedError；其他 -> StorageError"""
        if self._closed:
            return ClosedError("message store is closed")
        log.error(
            "message_store_operation_failed",
            operation=operation,
            error_type=type(error).__name__,
        )
        return StorageError(f"sqlite {operation} failed: {error}", error)

    @staticmethod
    def _row_to_message(row) -> Message:
        """将数据库行转换为 Message 模型"""
        return Message(
            id=row[0],
            receiver=row[1],
            sender=row[2],
            content=row[3],
            attachment_ref=row[4],
            timestamp=datetime.fromisoformat(row[5]),
        )
