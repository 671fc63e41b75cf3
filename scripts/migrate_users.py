""""轻量迁移：创建 users 表及其唯一索引（若不存在），不修改既有表。

用 SQLAlchemy 的 Base.metadata.create_all()，
只创建缺失的表，不会破坏现有数据。可作为脚本执行，也可被测试直接导入调用（run()）。"""

# scripts/migrate_users.py
import os
import sys

# 确保脚本在控制台有输出；不影响主服务的日志设置
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("PYTHONUNBUFFERED", "1")

from qvslv.infra.db import init_db, DATABASE_URL  # noqa: E402
from qvslv.infra.logger import configure_logging, emit  # noqa: E402


def run():
    emit("migrate_users_begin")
    print("[migrate_users] creating tables if not exists ...", flush=True)
    init_db()
    emit("migrate_users_done", status="ok")
    print("[migrate_users] done.", flush=True)


if __name__ == "__main__":
    configure_logging()
    print(f"[migrate_users] DATABASE_URL={DATABASE_URL.split('@')[-1]}", flush=True)
    try:
        run()
        sys.exit(0)
    except Exception as e:
        emit("migrate_users_error", level="ERROR", error=str(e))
        print(f"[migrate_users] ERROR: {e}", file=sys.stderr, flush=True)
        sys.exit(1)
