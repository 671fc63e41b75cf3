# qvslv/api/auth.py
"""
认证路由（主程序以 "/api/auth" 前缀挂载）：
- POST /register  201 → {"message", "user": profile_view}
- POST /login     200 → {"message", "token", "expiresAt", "user": session_view}
- GET  /verify    200 → {"valid": true, "user": session_view}
- GET  /profile   200 → {"user": profile_view}
- POST /logout    200 → {"message"}（无状态，令牌可选）

入参模型字段全部可选：缺字段/格式问题由 services.credentials 统一判定错误类型，
而不是让框架返回 422。未知字段（比如 role）直接忽略。
错误到 HTTP 状态码的映射在 main.py 的异常处理器里完成。
"""
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from qvslv.api.deps.auth import get_bearer_token, get_current_user
from qvslv.core.context import RequestMeta, get_request_meta, decode_context
from qvslv.core.errors import TokenError
from qvslv.core.models import User
from qvslv.infra.db import get_db
from qvslv.infra.logger import emit
from qvslv.services import credentials

# 注意：这里不要再写 prefix
router = APIRouter(tags=["auth"])


class RegisterInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    firstName: Optional[str] = None
    lastName: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    specialization: Optional[str] = None
    motivation: Optional[str] = None


class LoginInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    username: Optional[str] = None
    password: Optional[str] = None


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(
    body: RegisterInput,
    db: Session = Depends(get_db),
    meta: RequestMeta = Depends(get_request_meta),
):
    user = credentials.register(db, body.model_dump(), meta)
    return {"message": "User registered successfully", "user": user.profile_view()}


@router.post("/login")
def login(
    body: LoginInput,
    db: Session = Depends(get_db),
    meta: RequestMeta = Depends(get_request_meta),
):
    result = credentials.login(db, body.username, body.password, meta)
    return {
        "message": "Login successful",
        "token": result["token"],
        "expiresAt": result["expires_at"].isoformat(),
        "user": result["user"].session_view(),
    }


@router.get("/verify")
def verify(user: User = Depends(get_current_user)):
    return {"valid": True, "user": user.session_view()}


@router.get("/profile")
def profile(user: User = Depends(get_current_user)):
    return {"user": user.profile_view()}


@router.post("/logout")
def logout(
    token: Optional[str] = Depends(get_bearer_token),
    meta: RequestMeta = Depends(get_request_meta),
):
    # 令牌无状态，服务端无需作废；只在令牌可解时记一笔是谁登出
    user_id = None
    if token:
        try:
            user_id = decode_context(token).user_id
        except TokenError as e:
            emit("auth_logout_token_ignored", reason=e.reason)
    emit("auth_logout", user_id=user_id, **meta.log_fields())
    return {"message": "Logged out"}
