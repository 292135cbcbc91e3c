from contextlib import asynccontextmanager

import pytest
from fastapi.testclient import TestClient
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.api.v1.routers import intercom_access as intercom_access_router
from app.core.limiter import limiter
from app.core.settings import settings
from app.main import app
from app.utils import verify_throttle
from conftest import access_logs, make_intercom, make_master_pin, make_temporary_pin

VERIFY_URL = "/api/v1/intercoms/7/access/verify"


@pytest.fixture
def rejected_session(monkeypatch, fake_db):
    """Route rows for rejected requests into the same fake session."""

    @asynccontextmanager
    async def _session():
        yield fake_db

    monkeypatch.setattr(intercom_access_router, "AsyncSessionLocal", _session)


@pytest.fixture
def verify_client(override_db, rejected_session, fake_db, credentials, no_throttle) -> TestClient:
    fake_db.register(make_intercom(id=7, building_id=3))
    credentials.add(make_master_pin(secret="1234"))
    return TestClient(app)


def test_granted_response_envelope(verify_client, fake_db, no_throttle):
    resp = verify_client.post(VERIFY_URL, json={"pin": "1234", "device_info": "lobby-panel"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["code"] == "ok"
    data = body["data"]
    assert data["granted"] is True
    assert data["credential_type"] == "Master"
    assert data["reason"] is None
    assert "timestamp" in data
    [row] = access_logs(fake_db)
    assert row.device_info == "lobby-panel"
    assert no_throttle == [(7, "testclient", True)]


def test_denials_look_identical(verify_client, fake_db, credentials):
    credentials.add(make_temporary_pin(secret="8642", max_uses=1, uses_count=1))

    wrong = verify_client.post(VERIFY_URL, json={"pin": "0000"}).json()["data"]
    exhausted = verify_client.post(VERIFY_URL, json={"pin": "8642"}).json()["data"]
    unknown = verify_client.post("/api/v1/intercoms/404/access/verify", json={"pin": "1234"}).json()["data"]

    for data in (wrong, exhausted, unknown):
        data.pop("timestamp")
    assert wrong == exhausted == unknown == {
        "granted": False,
        "reason": "invalid or expired credential",
        "credential_type": "None",
        "credential_ref_id": None,
    }
    assert [row.reason for row in access_logs(fake_db)] == [
        "no matching credential",
        "max uses reached",
        "unknown intercom",
    ]


def test_forwarded_client_address_is_logged(verify_client, fake_db):
    verify_client.post(VERIFY_URL, json={"pin": "1234"}, headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1"})

    [row] = access_logs(fake_db)
    assert row.ip_address == "203.0.113.9"


def test_device_info_falls_back_to_user_agent_and_is_truncated(verify_client, fake_db):
    verify_client.post(VERIFY_URL, json={"pin": "1234"}, headers={"User-Agent": "door-7"})
    verify_client.post(VERIFY_URL, json={"pin": "1234", "device_info": "x" * 500})

    first, second = access_logs(fake_db)
    assert first.device_info == "door-7"
    assert len(second.device_info) == 200


def test_throttled_caller_is_denied_and_not_counted(override_db, fake_db, credentials, monkeypatch):
    fake_db.register(make_intercom(id=7, building_id=3))
    credentials.add(make_master_pin(secret="1234"))
    registered = []

    async def locked(intercom_id, ip):
        return True

    async def register(*args):
        registered.append(args)

    monkeypatch.setattr(verify_throttle, "is_throttled", locked)
    monkeypatch.setattr(verify_throttle, "register_verify_attempt", register)

    resp = TestClient(app).post(VERIFY_URL, json={"pin": "1234"})

    assert resp.json()["data"]["granted"] is False
    [row] = access_logs(fake_db)
    assert row.reason == "too many failed attempts"
    assert registered == []


def test_missing_pin_never_echoes_body(verify_client, fake_db):
    resp = verify_client.post(VERIFY_URL, json={"device_info": "panel", "pinn": "1234"})

    assert resp.status_code == 422
    assert resp.json()["code"] == "validation_error"
    assert "1234" not in resp.text
    [row] = access_logs(fake_db)
    assert row.is_success is False
    assert row.reason == "malformed request"
    assert row.intercom_id == 7


def test_unparseable_intercom_id_is_rejected_without_a_row(verify_client, fake_db):
    resp = verify_client.post("/api/v1/intercoms/abc/access/verify", json={"pin": "1234"})

    assert resp.status_code == 422
    assert access_logs(fake_db) == []


@pytest.fixture
def one_verify_per_minute(monkeypatch):
    memory = Limiter(key_func=get_remote_address, storage_uri="memory://")
    monkeypatch.setattr(limiter, "enabled", True)
    monkeypatch.setattr(limiter, "_limiter", memory._limiter)
    monkeypatch.setattr(settings, "verify_rate_limit_per_minute", 1)


def test_rate_limited_call_is_still_logged(verify_client, fake_db, no_throttle, one_verify_per_minute):
    first = verify_client.post(VERIFY_URL, json={"pin": "1234"}, headers={"User-Agent": "door-7"})
    second = verify_client.post(VERIFY_URL, json={"pin": "1234"}, headers={"User-Agent": "door-7"})

    assert first.status_code == 200
    assert second.status_code == 429
    assert second.json()["code"] == "rate_limited"
    granted, limited = access_logs(fake_db)
    assert granted.is_success is True
    assert limited.is_success is False
    assert limited.reason == "rate limited"
    assert limited.device_info == "door-7"
    assert no_throttle == [(7, "testclient", True)]
