"""CLI 入口模块 -- python -m mailslot.core <command>

支持的命令：
  check-streams              检查所有 receiver 消息流 id 是否连续
  history <receiver> [after] 打印 receiver 的历史消息
"""

import asyncio
import sys

from .config import get_db_path


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        _print_usage()
        sys.exit(1)

    command = sys.argv[1]

    if command == "check-streams":
        ok = asyncio.run(check_streams())
        sys.exit(0 if ok else 1)
    elif command == "history":
        if len(sys.argv) < 3:
            print("用法: python -m mailslot.core history <receiver> [after_id]")
            sys.exit(1)
        receiver = sys.argv[2]
        try:
            after_id = int(sys.argv[3]) if len(sys.argv) > 3 else 0
        except ValueError:
            print(f"after_id 必须是整数: {sys.argv[3]}")
            sys.exit(1)
        asyncio.run(print_history(receiver, after_id))
    else:
        print(f"未知命令: {command}")
        print("可用命令: check-streams, history")
        sys.exit(1)


def _print_usage() -> None:
    print("用法: python -m mailslot.core <command>")
    print("命令:")
    print("  check-streams              检查所有 receiver 消息流 id 是否连续")
    print("  history <receiver> [after] 打印 receiver 的历史消息")


async def check_streams() -> bool:
    """执行消息流完整性检查，全部稠密时返回 True"""
    from .integrity import verify_streams
    from .store import create_store_group

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")

    store_group = await create_store_group(db_path)
    try:
        reports = await verify_streams(store_group.message_store)
    finally:
        await store_group.close()

    broken = [r for r in reports if not r.is_dense]
    for report in broken:
        print(
            f"[缺口] {report.receiver}: count={report.count} "
            f"min_id={report.min_id} max_id={report.max_id}"
        )
    print(f"检查完成，共 {len(reports)} 个消息流，{len(broken)} 个存在缺口")
    return not broken


async def print_history(receiver: str, after_id: int = 0) -> None:
    """逐页打印 receiver 的历史消息"""
    from .store import create_store_group

    store_group = await create_store_group(get_db_path())
    try:
        async for message in store_group.message_store.iter_messages(
            receiver, after_id
        ):
            attachment = f" [{message.attachment_ref}]" if message.attachment_ref else ""
            print(
                f"{message.id}\t{message.timestamp.isoformat()}\t"
                f"{message.sender}: {message.content}{attachment}"
            )
    finally:
        await store_group.close()


if __name__ == "__main__":
    main()
