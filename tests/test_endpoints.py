import json

import pytest
from fastapi.testclient import TestClient

from credmail.main import app
from credmail.services.delivery import DeliveryOrchestrator
from fakes import FakeOpener


client = TestClient(app)


@pytest.fixture
def opener(monkeypatch):
    monkeypatch.delenv("API_KEY", raising=False)
    fake = FakeOpener()
    app.state.orchestrator = DeliveryOrchestrator(draft_opener=fake, stagger_seconds=0)
    return fake


@pytest.fixture
def settings_file(tmp_path, monkeypatch):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"emailSettings": {"method": "desktop"}}))
    monkeypatch.setenv("SETTINGS_PATH", str(path))
    return path


def _payload(kind="pin", **extra):
    payload = {
        "kind": kind,
        "requests": [
            {"recipient": {"userName": "jdoe", "fullName": "Jane Doe", "email": "jdoe@contoso.com", "shortId": "4821"}},
            {"recipient": {"userName": "nomail", "shortId": "1111"}},
        ],
    }
    payload.update(extra)
    return payload


def test_root_ok():
    r = client.get("/")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_send_uses_settings_file(opener, settings_file):
    r = client.post("/credentials/send", json=_payload())

    assert r.status_code == 200
    assert r.json() == {
        "method": "desktop",
        "success": 1,
        "failed": 1,
        "errors": ["nomail: user is missing an email address."],
    }
    assert opener.urls[0].startswith("mailto:jdoe@contoso.com?subject=Your%20SAFEQ%20PIN")


def test_send_with_inline_settings(opener, monkeypatch, tmp_path):
    monkeypatch.setenv("SETTINGS_PATH", str(tmp_path / "missing.json"))
    settings = {"method": "desktop", "otpTemplate": {"subject": "Code", "body": "OTP {{otp}}"}}

    r = client.post(
        "/credentials/send",
        json=_payload(
            kind="otp",
            settings=settings,
            requests=[{"recipient": {"userName": "a", "email": "a@contoso.com"}, "otpOverride": "x9"}],
        ),
    )

    assert r.status_code == 200
    assert r.json()["success"] == 1
    assert "body=OTP%20x9" in opener.urls[0]


def test_send_without_settings_is_400(opener, monkeypatch, tmp_path):
    monkeypatch.setenv("SETTINGS_PATH", str(tmp_path / "missing.json"))

    r = client.post("/credentials/send", json=_payload())

    assert r.status_code == 400
    assert "not configured" in r.json()["detail"]
    assert opener.urls == []


def test_send_graph_missing_credentials_is_400(opener, settings_file):
    r = client.post("/credentials/send", json=_payload(settings={"method": "graph", "graphTenantId": "t"}))

    assert r.status_code == 400
    assert "graphClientId" in r.json()["detail"]


def test_unknown_kind_is_422(opener, settings_file):
    r = client.post("/credentials/send", json=_payload(kind="sms"))
    assert r.status_code == 422


def test_preview_renders_without_dispatch(opener, settings_file):
    r = client.post(
        "/credentials/preview",
        json=_payload(settings={"pinTemplate": {"subject": "PIN", "body": "<p>{{fullName}}: {{pin}}</p>"}}),
    )

    assert r.status_code == 200
    data = r.json()
    assert data["ok"] is True
    assert data["kind"] == "pin"
    assert data["messages"] == [
        {"to": "jdoe@contoso.com", "subject": "PIN", "body": "<p>Jane Doe: 4821</p>", "content_type": "html"},
    ]
    assert data["errors"] == ["nomail: user is missing an email address."]
    assert opener.urls == []


def test_api_key_guard_blocks_when_configured(opener, settings_file, monkeypatch):
    monkeypatch.setenv("API_KEY", "secret123")

    r = client.post("/credentials/preview", json=_payload())
    assert r.status_code == 401
    assert "api key" in r.json()["detail"].lower()

    r2 = client.post("/credentials/preview", json=_payload(), headers={"x-api-key": "secret123"})
    assert r2.status_code == 200


def test_healthz_open_without_api_key(monkeypatch):
    monkeypatch.setenv("API_KEY", "secret123")
    r = client.get("/healthz")
    assert r.status_code == 200
