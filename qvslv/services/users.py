"""
模块职能：
- 用户存储（users 表）：按 email/username 查重、大小写不敏感查用户名、按 id 查、创建、保存。
- 唯一性靠数据库唯一索引兜底：并发注册时“先查后插”即使都查不到，也只有一条能 commit，
  另一条命中 IntegrityError 后回查并转成 ConflictError（email 优先）。
- 其余 SQLAlchemyError 回滚后转成 InternalError（对外 500，不带细节）。

日志：
- store_user_created / store_conflict / store_user_saved / store_error
"""
from datetime import datetime, timezone
from typing import Dict, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from qvslv.core.errors import ConflictError, InternalError
from qvslv.core.models import User
from qvslv.infra.logger import emit, emit_error


def username_key(username: str) -> str:
    return username.strip().lower()


def _store_failure(db: Session, op: str, e: Exception) -> InternalError:
    db.rollback()
    emit_error("store_error", op=op, error=repr(e))
    return InternalError()


def find_by_email_or_username(db: Session, email: str, username: str) -> Optional[User]:
    try:
        return (db.query(User)
                .filter(or_(User.email == email,
                            User.username == username,
                            User.username_key == username_key(username)))
                .first())
    except SQLAlchemyError as e:
        raise _store_failure(db, "find_by_email_or_username", e)


def find_by_username_ci(db: Session, username: str) -> Optional[User]:
    try:
        return db.query(User).filter(User.username_key == username_key(username)).first()
    except SQLAlchemyError as e:
        raise _store_failure(db, "find_by_username_ci", e)


def find_by_id(db: Session, user_id: str) -> Optional[User]:
    try:
        return db.get(User, user_id)
    except SQLAlchemyError as e:
        raise _store_failure(db, "find_by_id", e)


def conflict_field(existing: User, email: str) -> str:
    # 两个键都撞上时先报 email
    return "email" if existing.email == email else "username"


def create(db: Session, draft: Dict) -> User:
    """
    draft 为已规范化的字段（email 小写、去空白），password_hash 已算好。
    返回落库后的 User；唯一键冲突抛 ConflictError(field)。
    """
    user = User(username_key=username_key(draft["username"]), **draft)
    try:
        db.add(user)
        db.commit()
        db.refresh(user)
    except IntegrityError:
        db.rollback()
        existed = find_by_email_or_username(db, draft["email"], draft["username"])
        field = conflict_field(existed, draft["email"]) if existed else "username"
        emit("store_conflict", field=field, username=draft["username"])
        raise ConflictError(field)
    except SQLAlchemyError as e:
        raise _store_failure(db, "create", e)

    emit("store_user_created", user_id=user.id, username=user.username)
    return user


def save(db: Session, user: User) -> User:
    """持久化对 user 的修改；每次保存都刷新 updated_at。"""
    user.updated_at = datetime.now(timezone.utc)
    try:
        db.add(user)
        db.commit()
        db.refresh(user)
    except SQLAlchemyError as e:
        raise _store_failure(db, "save", e)
    emit("store_user_saved", user_id=user.id)
    return user
