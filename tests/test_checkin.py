from __future__ import annotations

import json
import sys
import uuid
from pathlib import Path
from typing import Dict, Tuple

import jwt
import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from elithe_api.main import app
from elithe_api.config import get_settings
from elithe_api.database import Base, engine
from elithe_api.rate_limit import _window_counts as _rate_counts


def _token(member_id: str, role: str = "member") -> str:
    return jwt.encode(
        {"sub": member_id, "user_metadata": {"role": role}},
        get_settings().jwt_secret,
        algorithm="HS256",
    )


def _auth(member_id: str, role: str = "member") -> Dict[str, str]:
    return {"Authorization": f"Bearer {_token(member_id, role)}"}


@pytest.fixture()
def client() -> TestClient:
    get_settings.cache_clear()  # type: ignore[attr-defined]
    _rate_counts.clear()
    Base.metadata.create_all(bind=engine)
    return TestClient(app)


@pytest.fixture()
def admin() -> Dict[str, str]:
    return _auth(f"admin-{uuid.uuid4().hex[:8]}", "admin")


def _active_event(client: TestClient, admin: Dict[str, str]) -> str:
    r = client.post(
        "/api/events",
        json={"nome": "Rolê Litoral", "data": "2025-06-10", "destino": "Ubatuba"},
        headers=admin,
    )
    assert r.status_code == 201, r.text
    event_id = r.json()["id"]
    r = client.put(f"/api/events/{event_id}/active", json={"ativo": True}, headers=admin)
    assert r.status_code == 200, r.text
    return event_id


def _confirmed_member(client: TestClient, event_id: str) -> Tuple[str, dict]:
    member_id = str(uuid.uuid4())
    headers = _auth(member_id)
    r = client.put("/api/members/me", json={"nome": "Carla Motos", "moto_atual": "Triumph Tiger"}, headers=headers)
    assert r.status_code == 200, r.text
    r = client.post(
        f"/api/events/{event_id}/attend",
        json={"moto_dia": "Triumph Tiger", "pe_escolhido": "Posto Graal Km 38"},
        headers=headers,
    )
    assert r.status_code == 201, r.text
    return member_id, r.json()


def _checkin_payload(body: dict) -> str:
    token = body["confirmation"]["qr_token"]
    return json.dumps(
        {
            "type": "elithe_checkin",
            "confirmationId": body["confirmation"]["id"],
            "token": token,
            "timestamp": 1718000000000,
        }
    )


def test_validate_register_and_duplicate_scan(client: TestClient, admin: Dict[str, str]) -> None:
    event_id = _active_event(client, admin)
    _, body = _confirmed_member(client, event_id)
    assert body["confirmation"]["qr_code"].startswith("data:image/png;base64,")
    qr_data = _checkin_payload(body)

    r = client.post("/api/checkin/validate", json={"qrData": qr_data}, headers=admin)
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["valid"] is True
    assert data["confirmation"]["userName"] == "Carla Motos"
    assert data["confirmation"]["eventId"] == event_id
    assert data["confirmation"]["checkedIn"] is False

    r = client.post("/api/checkin/register", json={"qrData": qr_data}, headers=admin)
    assert r.status_code == 200, r.text
    first = r.json()
    assert first["success"] is True
    assert first["checkedIn"]["checkedIn"] is True
    checked_in_at = first["checkedIn"]["checkedInAt"]
    assert checked_in_at

    r = client.post("/api/checkin/register", json={"token": body["confirmation"]["qr_token"]}, headers=admin)
    assert r.status_code == 400
    dup = r.json()
    assert dup["ok"] is False
    assert dup["alreadyCheckedIn"] is True
    assert dup["userName"] == "Carla Motos"
    assert dup["checkedInAt"].startswith(checked_in_at[:19])

    # Validation stays read-only and now reports the check-in
    r = client.post("/api/checkin/validate", json={"token": body["confirmation"]["qr_token"]}, headers=admin)
    assert r.status_code == 200
    assert r.json()["confirmation"]["checkedIn"] is True


def test_member_badge_needs_event_selection(client: TestClient, admin: Dict[str, str]) -> None:
    event_id = _active_event(client, admin)
    member_id, _ = _confirmed_member(client, event_id)

    r = client.get("/api/members/me/badge", headers=_auth(member_id))
    assert r.status_code == 200, r.text
    badge = r.json()
    assert json.loads(badge["payload"])["userId"] == member_id

    r = client.post("/api/checkin/validate", json={"qrData": badge["payload"]}, headers=admin)
    assert r.status_code == 400
    assert r.json()["error"] == "Selecione um evento para validar Carteirinha de Membro"

    r = client.post("/api/checkin/validate", json={"qrData": badge["payload"], "eventId": event_id}, headers=admin)
    assert r.status_code == 200, r.text
    assert r.json()["confirmation"]["eventId"] == event_id

    other_event = _active_event(client, admin)
    r = client.post(
        "/api/checkin/validate", json={"qrData": badge["payload"], "eventId": other_event}, headers=admin
    )
    assert r.status_code == 404
    assert r.json()["error"] == "Membro não inscrito neste evento"


@pytest.mark.parametrize(
    "qr_data",
    [
        "not json at all",
        '{"type":"unknown"}',
        '{"type":"elithe_checkin","confirmationId":1,"token":"abc"}',
        "[1,2,3]",
        pytest.param("[" * 100000, id="deeply-nested-array"),
    ],
)
def test_foreign_qr_is_rejected_without_lookup(client: TestClient, admin: Dict[str, str], qr_data: str) -> None:
    r = client.post("/api/checkin/validate", json={"qrData": qr_data}, headers=admin)
    assert r.status_code == 400
    assert r.json()["ok"] is False

    r = client.post("/api/checkin/register", json={"qrData": qr_data}, headers=admin)
    assert r.status_code == 400


def test_unknown_token(client: TestClient, admin: Dict[str, str]) -> None:
    unknown = str(uuid.uuid4())
    r = client.post("/api/checkin/validate", json={"token": unknown}, headers=admin)
    assert r.status_code == 404
    r = client.post("/api/checkin/register", json={"token": unknown}, headers=admin)
    assert r.status_code == 404
    assert r.json()["error"] == "QR Code não encontrado"


def test_missing_input(client: TestClient, admin: Dict[str, str]) -> None:
    r = client.post("/api/checkin/validate", json={}, headers=admin)
    assert r.status_code == 400
    assert r.json()["error"] == "Token não fornecido"
    r = client.post("/api/checkin/register", json={"token": "  "}, headers=admin)
    assert r.status_code == 400


def test_attendance_report_and_export(client: TestClient, admin: Dict[str, str]) -> None:
    event_id = _active_event(client, admin)
    _, checked = _confirmed_member(client, event_id)
    _confirmed_member(client, event_id)

    r = client.post("/api/checkin/register", json={"token": checked["confirmation"]["qr_token"]}, headers=admin)
    assert r.status_code == 200

    r = client.get(f"/api/checkin/events/{event_id}/attendance", headers=admin)
    assert r.status_code == 200, r.text
    report = r.json()
    assert report["stats"]["totalConfirmations"] == 2
    assert report["stats"]["totalCheckedIn"] == 1
    assert report["stats"]["totalNotCheckedIn"] == 1
    assert report["stats"]["attendanceRate"] == 50
    assert report["stats"]["firstCheckIn"] == report["stats"]["lastCheckIn"]
    assert [a["checkedIn"] for a in report["attendees"]] == [True, False]

    r = client.get(f"/api/export.attendance.csv?event_id={event_id}", headers=admin)
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    lines = r.text.strip().splitlines()
    assert lines[0].startswith("id,userName,userEmail")
    assert len(lines) == 3

    r = client.get(f"/api/checkin/events/{uuid.uuid4()}/attendance", headers=admin)
    assert r.status_code == 404


def test_checkin_requires_admin(client: TestClient) -> None:
    r = client.post("/api/checkin/validate", json={"token": "x"})
    assert r.status_code == 401
    assert r.json()["error"] == "Access denied. No token provided."

    r = client.post("/api/checkin/validate", json={"token": "x"}, headers=_auth(str(uuid.uuid4())))
    assert r.status_code == 403

    r = client.post("/api/checkin/register", json={"token": "x"}, headers={"Authorization": "Bearer garbage"})
    assert r.status_code == 403
