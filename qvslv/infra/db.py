""""模块职能：

读取 DATABASE_URL（老环境兼容 DB_URI），创建 SQLAlchemy 引擎

暴露 SessionLocal、get_db()（FastAPI 依赖）

init_db()：启动时建表并探活；连不上库直接抛异常，进程不对外服务"""

import os
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker

from qvslv.core.models import Base
from qvslv.infra.logger import emit, emit_error

DATABASE_URL = os.getenv("DATABASE_URL") or os.getenv("DB_URI") or "sqlite:///./qvslv.db"

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
    pool_pre_ping=True,
)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def _safe_url() -> str:
    # 日志里不带口令
    return engine.url.render_as_string(hide_password=True)


def init_db():
    emit("db_init_begin", database_url=_safe_url())
    try:
        Base.metadata.create_all(bind=engine)
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        emit_error("db_init_failed", database_url=_safe_url(), error=repr(e))
        raise
    emit("db_init_done")


def get_db() -> Generator[Session, None, None]:
    """FastAPI 依赖函数：yield 一个 Session，用后自动关闭。"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
