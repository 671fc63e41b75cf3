"""
统一日志配置（控制台 + 文件），结构化输出（JSON 一行）。
- configure_logging(): 根据环境变量设置日志等级与落盘，uvicorn 日志合流到同一套 handler。
- emit(event, **kwargs): 输出结构化日志（dict -> 一行），方便检索。
- emit_warning / emit_error: 同上，分别用 WARNING / ERROR 等级。

约定：口令、哈希、令牌一律不进日志。
"""
import json
import logging
import os
import pathlib
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler


LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_TO_FILE = os.getenv("LOG_TO_FILE", "true").lower() == "true"
LOG_DIR = os.getenv("LOG_DIR", "logs")
LOG_FILE = os.getenv("LOG_FILE", "app.log")
LOG_ROTATE_WHEN = os.getenv("LOG_ROTATE_WHEN", "midnight")
LOG_BACKUP_COUNT = int(os.getenv("LOG_BACKUP_COUNT", "7"))

_configured = False


def configure_logging():
    global _configured
    if _configured:
        return

    level = getattr(logging, LEVEL, logging.INFO)
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    ))
    root.addHandler(console)

    if LOG_TO_FILE:
        pathlib.Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
        fileh = TimedRotatingFileHandler(
            os.path.join(LOG_DIR, LOG_FILE),
            when=LOG_ROTATE_WHEN, backupCount=LOG_BACKUP_COUNT, encoding="utf-8",
        )
        fileh.setLevel(level)
        # 文件里只写 message（纯 JSON），便于检索
        fileh.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(fileh)

    root.setLevel(level)

    # 合流 uvicorn 日志
    for ln in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        lg = logging.getLogger(ln)
        lg.handlers = []
        lg.propagate = True

    _configured = True


_app_logger = logging.getLogger("qvslv")


def _now_iso():
    # 本地时区 + 毫秒，示例：2025-09-18T17:30:42.123+09:00
    return datetime.now().astimezone().isoformat(timespec="milliseconds")


def _dump(rec: dict) -> str:
    try:
        return json.dumps(rec, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(rec)


def emit(event: str, level: str = "INFO", **kwargs):
    """
    结构化日志：默认 INFO；每条都带时间戳 ts（本地时区）。
    用法：emit("auth_login_success", user_id=..., role="VERIFIED")
    """
    level = level.upper()
    rec = {"ts": _now_iso(), "level": level, "event": event, **kwargs}
    _app_logger.log(getattr(logging, level, logging.INFO), _dump(rec))


def emit_warning(event: str, **kwargs):
    emit(event, level="WARNING", **kwargs)


def emit_error(event: str, **kwargs):
    """
    错误日志（level=ERROR），同样带 ts。
    用法：emit_error("store_error", op="create", err=str(e))
    """
    emit(event, level="ERROR", **kwargs)
