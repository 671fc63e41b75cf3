# qvslv/core/context.py
"""
统一提供令牌上下文（user_id、username、role、issued_at）与请求元信息。
- 令牌解码：decode_context(token)，签名/格式错误与过期分别打点，对外统一抛 TokenError
- 兼容负载：sub / user_id
- 事件打点：auth_token_expired / auth_token_invalid / auth_token_missing_sub
- 请求元信息：RequestMeta（request_id、ip、user_agent、ts），仅用于审计日志，可选
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import jwt
from fastapi import Request
from pydantic import BaseModel

from qvslv.core.errors import TokenError
from qvslv.core.security import ALGORITHM, get_secret_key
from qvslv.infra.logger import emit


class Context(BaseModel):
    user_id: str
    username: Optional[str] = None
    role: Optional[str] = None
    issued_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @classmethod
    def from_payload(cls, data: dict) -> "Context":
        uid = data.get("sub") or data.get("user_id") or ""
        iat = data.get("iat")
        exp = data.get("exp")
        return cls(
            user_id=str(uid),
            username=data.get("username"),
            role=data.get("role"),
            issued_at=datetime.fromtimestamp(iat, tz=timezone.utc) if iat else None,
            expires_at=datetime.fromtimestamp(exp, tz=timezone.utc) if exp else None,
        )


def decode_context(token: str) -> Context:
    """校验签名与过期时间，返回令牌里的声明。无状态：不查库。"""
    try:
        payload = jwt.decode(
            token,
            get_secret_key(),
            algorithms=[ALGORITHM],
            options={"require": ["exp"], "verify_aud": False},
        )
    except jwt.ExpiredSignatureError:
        emit("auth_token_expired", level="WARNING")
        raise TokenError("expired")
    except jwt.PyJWTError as e:
        emit("auth_token_invalid", level="WARNING", error=str(e))
        raise TokenError("malformed")

    ctx = Context.from_payload(payload)
    if not ctx.user_id:
        emit("auth_token_missing_sub", level="WARNING")
        raise TokenError("malformed")
    return ctx


class RequestMeta(BaseModel):
    request_id: Optional[str] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    ts: Optional[str] = None

    def log_fields(self) -> dict:
        return {"request_id": self.request_id, "ip": self.ip, "ua": self.user_agent}


def get_request_meta(request: Request) -> RequestMeta:
    """FastAPI 依赖：request_id 由 RequestLoggingMiddleware 写入 request.state。"""
    return RequestMeta(
        request_id=getattr(request.state, "request_id", None),
        ip=str(request.client.host) if request.client else None,
        user_agent=request.headers.get("user-agent"),
        ts=datetime.now().astimezone().isoformat(timespec="milliseconds"),
    )
