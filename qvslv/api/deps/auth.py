# qvslv/api/deps/auth.py
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from qvslv.core.models import User
from qvslv.infra.db import get_db
from qvslv.services import credentials

bearer_scheme = HTTPBearer(auto_error=False)


def get_bearer_token(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    if not creds or not creds.credentials:
        return None
    return creds.credentials


def get_current_user(
    token: Optional[str] = Depends(get_bearer_token),
    db: Session = Depends(get_db),
) -> User:
    """
    从 Authorization: Bearer <token> 解析出当前用户，并查库返回 User。
    无凭证、令牌无效/过期、用户不存在或已禁用 → 401。
    """
    return credentials.verify_session(db, token)
