# qvslv/core/security.py
""""封装口令哈希/校验（passlib[bcrypt]）与会话 JWT 的签发。

- hash_password / verify_password：bcrypt 加盐哈希，cost 由 BCRYPT_ROUNDS 决定（默认 12，旧版本为 10）
- password_needs_rehash：库中哈希的 cost 与当前配置不一致时返回 True（登录成功后顺带升级）
- issue_token：把 sub/username/role/iat/exp 写入 JWT 负载，返回 (token, expires_at)

令牌校验见 core/context.py（decode_context）。"""

import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import jwt  # PyJWT
from passlib.context import CryptContext

ALGORITHM = "HS256"

# 未配置 SECRET_KEY 时使用的内置秘钥（不安全，仅为保持旧行为）
DEFAULT_SECRET_KEY = "qvslv-insecure-default-secret-change-me"
DEFAULT_TOKEN_TTL_MINUTES = 60 * 24
DEFAULT_BCRYPT_ROUNDS = 12


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


BCRYPT_ROUNDS = _int_env("BCRYPT_ROUNDS", DEFAULT_BCRYPT_ROUNDS)

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__default_rounds=BCRYPT_ROUNDS,
    # cost 与当前配置不同的旧哈希（比如 10）在登录成功后会被重新哈希
    bcrypt__min_rounds=BCRYPT_ROUNDS,
    bcrypt__max_rounds=BCRYPT_ROUNDS,
)


def get_secret_key() -> str:
    # 兼容老环境的 JWT_SECRET；都没有时退回内置秘钥
    return os.getenv("SECRET_KEY") or os.getenv("JWT_SECRET") or DEFAULT_SECRET_KEY


def using_fallback_secret() -> bool:
    return get_secret_key() == DEFAULT_SECRET_KEY


def get_access_token_expire_minutes() -> int:
    return _int_env("ACCESS_TOKEN_EXPIRE_MINUTES", DEFAULT_TOKEN_TTL_MINUTES)


def hash_password(plain: str) -> str:
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: Optional[str]) -> bool:
    """bcrypt.checkpw 内部为常量时间比较；哈希格式不合法时返回 False 而不抛异常。"""
    if not plain or not hashed:
        return False
    try:
        return pwd_context.verify(plain, hashed)
    except (ValueError, TypeError):
        return False


def dummy_verify() -> None:
    # 用户不存在时也消耗一次校验时间，避免靠响应时间探测账号
    pwd_context.dummy_verify()


def password_needs_rehash(hashed: str) -> bool:
    try:
        return pwd_context.needs_update(hashed)
    except (ValueError, TypeError):
        return False


def issue_token(
    claims: Dict[str, Any], ttl: Optional[timedelta] = None
) -> Tuple[str, datetime]:
    """
    签发会话令牌。
    claims 至少包含 sub（user_id）、username、role；iat/exp 由这里写入。
    ttl 缺省取 ACCESS_TOKEN_EXPIRE_MINUTES；ttl<=0 的令牌签出即过期。
    """
    if ttl is None:
        ttl = timedelta(minutes=get_access_token_expire_minutes())
    now = datetime.now(timezone.utc)
    expires_at = now + ttl
    to_encode = dict(claims)
    to_encode.update({
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
    })
    token = jwt.encode(to_encode, get_secret_key(), algorithm=ALGORITHM)
    return token, expires_at
