"""
模块职能：注册、登录、会话校验的编排。

注册：Received → Validated → Deduplicated → Hashed → Persisted → Completed，任一关卡失败即 Rejected
  1) 校验：必填字段 → 邮箱格式 → 口令长度 → 专业枚举 → 字段长度，第一个失败的胜出
  2) 规范化：文本去空白，email 再转小写
  3) 查重：email/username 撞库 → ConflictError（email 优先）
  4) 哈希：bcrypt（cost 见 core.security.BCRYPT_ROUNDS）
  5) 落库：role 固定为 REGISTRATION_ROLE（默认 VERIFIED），客户端传的 role 一律忽略

登录：
  用户不存在 / 口令错 → 同一个 AuthenticationError（不泄露账号是否存在）
  账号禁用 → AuthorizationError（403）
  成功 → last_login / login_count 更新，签发令牌

会话校验：只读，不改库。

日志事件：auth_register_* / auth_login_* / auth_verify_*；失败原因只进日志，不进响应。
"""
import os
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from qvslv.core import security
from qvslv.core.context import RequestMeta, decode_context
from qvslv.core.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    TokenError,
    ValidationError,
)
from qvslv.core.models import (
    FIRST_NAME_MAX, LAST_NAME_MAX, MOTIVATION_MAX, PASSWORD_MIN,
    USERNAME_MAX, USERNAME_MIN,
    Specialization, User, UserRole,
)
from qvslv.infra.logger import emit
from qvslv.services import users as user_store

# \w 仅限 ASCII；[.-] 后必须跟字符，不写嵌套的可选量词
EMAIL_RE = re.compile(r"^\w+(?:[.-]\w+)*@\w+(?:[.-]\w+)*(?:\.\w{2,3})+$", re.ASCII)
EMAIL_MAX = 254

REQUIRED_REGISTER_FIELDS = ("firstName", "lastName", "username", "email", "password", "specialization")
SPECIALIZATIONS = {s.value for s in Specialization}


def get_registration_role() -> UserRole:
    raw = (os.getenv("REGISTRATION_ROLE") or UserRole.VERIFIED.value).strip().upper()
    try:
        return UserRole(raw)
    except ValueError:
        emit("auth_registration_role_invalid", level="WARNING", value=raw)
        return UserRole.VERIFIED


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _meta(meta: Optional[RequestMeta]) -> dict:
    return meta.log_fields() if meta else {}


def validate_registration(data: Dict[str, Any]) -> Dict[str, str]:
    """返回规范化后的字段；第一个不通过的校验抛 ValidationError。"""
    missing = [f for f in REQUIRED_REGISTER_FIELDS
               if not (_text(data.get(f)) if f != "password" else data.get(f))]
    if missing:
        raise ValidationError("missing_fields", field=missing[0],
                              message="Missing required fields: " + ", ".join(missing))

    email = _text(data["email"]).lower()
    if len(email) > EMAIL_MAX or not EMAIL_RE.match(email):
        raise ValidationError("invalid_email", field="email", message="Invalid email address")

    password = data["password"]
    if len(password) < PASSWORD_MIN:
        raise ValidationError("weak_password", field="password",
                              message=f"Password must be at least {PASSWORD_MIN} characters")

    specialization = _text(data["specialization"])
    if specialization not in SPECIALIZATIONS:
        raise ValidationError("invalid_specialization", field="specialization",
                              message="Invalid specialization")

    cleaned = {
        "first_name": _text(data["firstName"]),
        "last_name": _text(data["lastName"]),
        "username": _text(data["username"]),
        "email": email,
        "specialization": specialization,
        "motivation": _text(data.get("motivation")),
    }

    limits = (
        ("firstName", cleaned["first_name"], 1, FIRST_NAME_MAX),
        ("lastName", cleaned["last_name"], 1, LAST_NAME_MAX),
        ("username", cleaned["username"], USERNAME_MIN, USERNAME_MAX),
        ("motivation", cleaned["motivation"], 0, MOTIVATION_MAX),
    )
    for field, value, lo, hi in limits:
        if not lo <= len(value) <= hi:
            raise ValidationError("length", field=field,
                                  message=f"{field} must be between {lo} and {hi} characters")
    return cleaned


def register(db: Session, data: Dict[str, Any], meta: Optional[RequestMeta] = None) -> User:
    emit("auth_register_attempt", username=_text(data.get("username")), **_meta(meta))

    try:
        cleaned = validate_registration(data)
    except ValidationError as e:
        emit("auth_register_rejected", reason=e.reason, field=e.field, **_meta(meta))
        raise

    existing = user_store.find_by_email_or_username(db, cleaned["email"], cleaned["username"])
    if existing:
        field = user_store.conflict_field(existing, cleaned["email"])
        emit("auth_register_conflict", field=field, username=cleaned["username"], **_meta(meta))
        raise ConflictError(field)

    draft = dict(cleaned)
    draft["password_hash"] = security.hash_password(data["password"])
    draft["specialization"] = Specialization(cleaned["specialization"])
    draft["role"] = get_registration_role()

    # 与并发注册竞争时，store.create 依旧可能抛 ConflictError
    user = user_store.create(db, draft)
    emit("auth_register_success", user_id=user.id, username=user.username,
         role=user.role.value, **_meta(meta))
    return user


def login(
    db: Session,
    username: Optional[str],
    password: Optional[str],
    meta: Optional[RequestMeta] = None,
) -> Dict[str, Any]:
    """
    成功返回 {"token", "expires_at", "user"}。
    """
    uname = _text(username)
    if not uname or not password:
        emit("auth_login_rejected", reason="missing_fields", **_meta(meta))
        raise ValidationError("missing_fields", message="Username and password are required")

    emit("auth_login_attempt", username=uname, **_meta(meta))

    user = user_store.find_by_username_ci(db, uname)
    if user is None:
        security.dummy_verify()
        emit("auth_login_failed", username=uname, reason="not_found", **_meta(meta))
        raise AuthenticationError()

    if not user.is_active:
        emit("auth_login_failed", username=uname, user_id=user.id, reason="inactive", **_meta(meta))
        raise AuthorizationError()

    if not security.verify_password(password, user.password_hash):
        emit("auth_login_failed", username=uname, user_id=user.id, reason="bad_password", **_meta(meta))
        raise AuthenticationError()

    if security.password_needs_rehash(user.password_hash):
        user.password_hash = security.hash_password(password)
        emit("auth_password_rehashed", user_id=user.id)

    # 同一用户并发登录时 login_count 可能丢一次自增，可接受
    user.last_login = datetime.now(timezone.utc)
    user.login_count = (user.login_count or 0) + 1
    user = user_store.save(db, user)

    token, expires_at = security.issue_token({
        "sub": user.id,
        "username": user.username,
        "role": user.role.value,
    })
    emit("auth_login_success", user_id=user.id, username=user.username,
         role=user.role.value, login_count=user.login_count, **_meta(meta))
    return {"token": token, "expires_at": expires_at, "user": user}


def verify_session(db: Session, token: Optional[str]) -> User:
    """校验 Bearer 令牌并返回对应的活跃用户。"""
    if not token:
        emit("auth_missing_header")
        raise AuthenticationError("Not authenticated")

    try:
        ctx = decode_context(token)
    except TokenError as e:
        emit("auth_verify_failed", reason=e.reason)
        raise

    user = user_store.find_by_id(db, ctx.user_id)
    if user is None or not user.is_active:
        emit("auth_verify_failed", user_id=ctx.user_id,
             reason="not_found" if user is None else "inactive")
        raise AuthenticationError("Not authenticated")

    emit("auth_verify_ok", user_id=user.id)
    return user
