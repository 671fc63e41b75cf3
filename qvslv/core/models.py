""""
模块职能：

定义 users 表与两个枚举：

UserRole：ANONYMOUS / VERIFIED / RESEARCHER / EXPERT / GUARDIAN / ADMIN

Specialization：archives / ancient / social / tech / consciousness / symbols / crypto / research

User：字段与注册表单一一对应；password_hash 永不对外输出。

唯一性由数据库保证：email、username、username_key（小写影子键，用于大小写不敏感的登录查询）
三个唯一索引，并发注册时只有一条能插入成功。

User.session_view() / User.profile_view()：对外返回的公开视图。"""

# qvslv/core/models.py
import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, Enum as SAEnum, Index, Integer, String
from sqlalchemy.orm import declarative_base


def _uuid() -> str: return str(uuid.uuid4())


def _now() -> datetime: return datetime.now(timezone.utc)


Base = declarative_base()


class UserRole(str, Enum):
    ANONYMOUS = "ANONYMOUS"
    VERIFIED = "VERIFIED"
    RESEARCHER = "RESEARCHER"
    EXPERT = "EXPERT"
    GUARDIAN = "GUARDIAN"
    ADMIN = "ADMIN"


class Specialization(str, Enum):
    archives = "archives"
    ancient = "ancient"
    social = "social"
    tech = "tech"
    consciousness = "consciousness"
    symbols = "symbols"
    crypto = "crypto"
    research = "research"


FIRST_NAME_MAX = 50
LAST_NAME_MAX = 50
USERNAME_MIN = 3
USERNAME_MAX = 30
MOTIVATION_MAX = 500
PASSWORD_MIN = 6


def _iso(dt):
    return dt.isoformat() if dt else None


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    first_name = Column(String(FIRST_NAME_MAX), nullable=False)
    last_name = Column(String(LAST_NAME_MAX), nullable=False)
    username = Column(String(USERNAME_MAX), nullable=False, unique=True)
    username_key = Column(String(USERNAME_MAX), nullable=False, unique=True)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    specialization = Column(SAEnum(Specialization), nullable=False)
    motivation = Column(String(MOTIVATION_MAX), nullable=False, default="")
    role = Column(SAEnum(UserRole), nullable=False, default=UserRole.VERIFIED)
    is_active = Column(Boolean, nullable=False, default=True)
    last_login = Column(DateTime(timezone=True), nullable=True)
    login_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    def session_view(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "specialization": self.specialization.value,
            "role": self.role.value,
            "lastLogin": _iso(self.last_login),
            "loginCount": self.login_count,
        }

    def profile_view(self) -> dict:
        data = self.session_view()
        data.update({
            "email": self.email,
            "motivation": self.motivation,
            "isActive": self.is_active,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        })
        return data


Index("ix_users_created_at", User.created_at.desc())
