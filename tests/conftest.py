"""
测试公共夹具：
- 导入 app 之前先设置测试环境（临时 SQLite、低 bcrypt cost、固定秘钥、不写日志文件）
- client：TestClient（触发 lifespan → init_db）
- 每个用例结束后清空 users 表
"""
import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="qvslv_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["LOG_TO_FILE"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["SECRET_KEY"] = "test-secret-key-with-at-least-32-bytes!"
os.environ["BCRYPT_ROUNDS"] = "5"
os.environ.pop("ACCESS_TOKEN_EXPIRE_MINUTES", None)
os.environ.pop("REGISTRATION_ROLE", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from qvslv.core.models import User  # noqa: E402
from qvslv.infra.db import SessionLocal, init_db  # noqa: E402
from qvslv.main import app  # noqa: E402


@pytest.fixture(scope="session")
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture(autouse=True)
def _clean_users():
    init_db()  # 保险：不经过 lifespan 的用例也能建表
    yield
    with SessionLocal() as db:
        db.query(User).delete()
        db.commit()


@pytest.fixture
def db():
    with SessionLocal() as session:
        yield session
