# tests/test_startup.py
"""存储不可用时进程不能起来：lifespan 里 init_db 抛异常，TestClient 进入即失败。"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError

from qvslv.infra import db as db_module
from qvslv.main import app


def test_store_unavailable_at_startup_is_fatal(monkeypatch):
    events = []
    broken = create_engine("sqlite:////qvslv-no-such-dir/unreachable.db")
    monkeypatch.setattr(db_module, "engine", broken)
    monkeypatch.setattr(db_module, "emit_error", lambda event, **kw: events.append(event))

    with pytest.raises(OperationalError):
        with TestClient(app):
            pass

    assert "db_init_failed" in events
    broken.dispose()


def test_startup_failure_serves_no_traffic(monkeypatch):
    calls = []

    def _down():
        calls.append("init_db")
        raise RuntimeError("store unreachable")

    monkeypatch.setattr("qvslv.main.init_db", _down)

    with pytest.raises(RuntimeError, match="store unreachable"):
        with TestClient(app) as c:
            c.get("/api/health")

    assert calls == ["init_db"]
