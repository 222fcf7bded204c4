from __future__ import annotations

import sys
import threading
import uuid
from datetime import date
from pathlib import Path
from typing import Optional

import pytest
from sqlalchemy import func, select, update

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from elithe_api import attendance
from elithe_api.config import get_settings
from elithe_api.database import Base, SessionLocal, engine
from elithe_api.errors import (
    AlreadyConfirmed,
    CredentialIssuanceError,
    EventNotAvailable,
    NotFoundError,
    ValidationError,
)
from elithe_api.models import Confirmation, Event, Member, SystemLog
from elithe_api.routers.events import activate_event


@pytest.fixture()
def db():
    get_settings.cache_clear()  # type: ignore[attr-defined]
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def _member(db, *, bike: Optional[str] = None, birth: Optional[date] = None, count: int = 0) -> Member:
    m = Member(
        id=str(uuid.uuid4()),
        name=f"Piloto {uuid.uuid4().hex[:6]}",
        email=f"piloto_{uuid.uuid4().hex[:8]}@example.com",
        current_motorcycle=bike,
        birth_date=birth,
        participation_count=count,
        reward_tiers=count // 4,
    )
    db.add(m)
    db.commit()
    return m


def _event(db, *, when: date = date(2025, 6, 10), active: bool = True) -> Event:
    e = Event(id=str(uuid.uuid4()), name="Rolê Serra", event_date=when, destination="Campos do Jordão")
    db.add(e)
    db.commit()
    if active:
        activate_event(db, e.id)
    return e


def _confirmation_count(db, event_id: str, member_id: str) -> int:
    return db.execute(
        select(func.count())
        .select_from(Confirmation)
        .where(Confirmation.event_id == event_id, Confirmation.member_id == member_id)
    ).scalar_one()


def test_confirm_issues_credential_and_updates_counters(db) -> None:
    m = _member(db, bike="Honda CB500X", count=3)
    e = _event(db)

    result = attendance.confirm(db, e.id, m.id, "Honda CB500X", "Posto Graal Km 38")

    assert result.token is not None
    assert result.qr_code.startswith("data:image/png;base64,")
    assert result.stats.participation_count == 4
    assert result.stats.reward_tiers == 1
    assert result.stats.new_bike is False

    stored = db.get(Confirmation, result.confirmation_id)
    assert stored.token == result.token
    assert stored.checked_in_at is None
    assert stored.reward_tier_snapshot == 1

    body = result.to_response()
    assert body["message"] == "Presença confirmada!"
    assert body["confirmation"]["qr_token"] == result.token
    assert body["stats"]["estrelinhas"] == 1


def test_second_confirm_is_rejected_without_writes(db) -> None:
    m = _member(db)
    e = _event(db)
    attendance.confirm(db, e.id, m.id, "Yamaha MT07", "Shell Rodoanel")
    db.refresh(m)
    before = (m.participation_count, m.reward_tiers, m.current_motorcycle)

    with pytest.raises(AlreadyConfirmed):
        attendance.confirm(db, e.id, m.id, "Kawasaki Z900", "Outro PE")

    db.expire_all()
    m = db.get(Member, m.id)
    assert (m.participation_count, m.reward_tiers, m.current_motorcycle) == before
    assert _confirmation_count(db, e.id, m.id) == 1


def test_reward_tiers_follow_participation(db) -> None:
    m = _member(db, bike="BMW GS", count=2)
    tiers = []
    for i in range(6):
        e = _event(db, when=date(2025, 7, 1 + i))
        result = attendance.confirm(db, e.id, m.id, "BMW GS", "PE")
        tiers.append(result.stats.reward_tiers)
    db.refresh(m)
    assert m.participation_count == 8
    assert tiers == [0, 1, 1, 1, 1, 2]


def test_new_bike_detection(db) -> None:
    m = _member(db)
    first = attendance.confirm(db, _event(db).id, m.id, "Honda CB500X", "PE")
    assert first.stats.new_bike is False
    db.refresh(m)
    assert m.current_motorcycle == "Honda CB500X"

    same = attendance.confirm(db, _event(db).id, m.id, "  honda cb500x ", "PE")
    assert same.stats.new_bike is False

    changed = attendance.confirm(db, _event(db).id, m.id, "Yamaha MT07", "PE")
    assert changed.stats.new_bike is True
    db.refresh(m)
    assert m.current_motorcycle == "Yamaha MT07"


def test_birthday_flag_is_stored(db) -> None:
    m = _member(db, birth=date(1990, 6, 12))
    result = attendance.confirm(db, _event(db, when=date(2025, 6, 10)).id, m.id, "Moto", "PE")
    assert result.stats.birthday_window is True
    assert db.get(Confirmation, result.confirmation_id).birthday_window is True


def test_credential_failure_keeps_confirmation(db) -> None:
    m = _member(db)
    e = _event(db)

    def failing_issuer(confirmation_id: int):
        raise CredentialIssuanceError("renderer unavailable")

    result = attendance.confirm(db, e.id, m.id, "Moto", "PE", issuer=failing_issuer)

    assert result.token is None
    assert result.qr_code is None
    stored = db.get(Confirmation, result.confirmation_id)
    assert stored is not None
    assert stored.token is None
    assert result.stats.participation_count == 1

    failures = db.execute(
        select(SystemLog).where(
            SystemLog.action == "credential_issue", SystemLog.entity_id == str(result.confirmation_id)
        )
    ).scalars().all()
    assert len(failures) == 1
    assert failures[0].status == "error"


def test_inactive_or_missing_event(db) -> None:
    m = _member(db)
    inactive = _event(db, active=False)
    with pytest.raises(EventNotAvailable):
        attendance.confirm(db, inactive.id, m.id, "Moto", "PE")
    with pytest.raises(EventNotAvailable):
        attendance.confirm(db, str(uuid.uuid4()), m.id, "Moto", "PE")
    assert _confirmation_count(db, inactive.id, m.id) == 0


@pytest.mark.parametrize("bike,pe", [("", "PE"), ("Moto", ""), ("   ", "PE"), (None, "PE"), ("Moto", None)])
def test_blank_fields_are_rejected(db, bike, pe) -> None:
    m = _member(db)
    e = _event(db)
    with pytest.raises(ValidationError):
        attendance.confirm(db, e.id, m.id, bike, pe)
    db.refresh(m)
    assert m.participation_count == 0


def test_unknown_member(db) -> None:
    e = _event(db)
    with pytest.raises(NotFoundError):
        attendance.confirm(db, e.id, str(uuid.uuid4()), "Moto", "PE")


def test_status_reflects_confirmation(db) -> None:
    m = _member(db)
    e = _event(db)
    assert attendance.get_status(db, e.id, m.id) == {"confirmed": False}

    result = attendance.confirm(db, e.id, m.id, "Moto", "PE")
    status = attendance.get_status(db, e.id, m.id)
    assert status["confirmed"] is True
    assert status["data"].id == result.confirmation_id
    assert status["data"].qr_token == result.token


def test_history_is_newest_first(db) -> None:
    m = _member(db)
    first = attendance.confirm(db, _event(db, when=date(2025, 1, 5)).id, m.id, "Moto", "PE")
    second = attendance.confirm(db, _event(db, when=date(2025, 2, 5)).id, m.id, "Moto", "PE")
    items = attendance.history(db, m.id)
    assert [i.id for i in items] == [second.confirmation_id, first.confirmation_id]
    assert items[0].evento_nome == "Rolê Serra"


def test_reward_tiers_for() -> None:
    assert attendance.reward_tiers_for(0) == 0
    assert attendance.reward_tiers_for(3) == 0
    assert attendance.reward_tiers_for(4) == 1
    assert attendance.reward_tiers_for(9) == 2
    assert attendance.reward_tiers_for(9, tier_size=0) == 0


def test_concurrent_confirms_count_every_participation(db) -> None:
    member_id = _member(db, bike="Honda NC 750X").id
    events = [_event(db, when=date(2025, 10, 1 + i), active=False) for i in range(6)]
    event_ids = [e.id for e in events]
    # Confirms for several simultaneously open events race on the same member row
    db.execute(update(Event).where(Event.id.in_(event_ids)).values(active=True))
    db.commit()

    barrier = threading.Barrier(len(event_ids))
    snapshots = []
    lock = threading.Lock()

    def attend(event_id: str) -> None:
        session = SessionLocal()
        try:
            barrier.wait()
            result = attendance.confirm(session, event_id, member_id, "Honda NC 750X", "PE", issuer=_no_credential)
            with lock:
                snapshots.append(result.stats.participation_count)
        finally:
            session.close()

    threads = [threading.Thread(target=attend, args=(event_id,)) for event_id in event_ids]
    try:
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=120)
    finally:
        db.execute(update(Event).where(Event.id.in_(event_ids)).values(active=False))
        db.commit()

    db.expire_all()
    m = db.get(Member, member_id)
    assert m.participation_count == len(event_ids)
    assert m.reward_tiers == len(event_ids) // 4
    assert sorted(snapshots) == list(range(1, len(event_ids) + 1))
    tiers = db.execute(
        select(Confirmation.reward_tier_snapshot).where(Confirmation.member_id == member_id)
    ).scalars().all()
    assert sorted(tiers) == [n // 4 for n in range(1, len(event_ids) + 1)]


def _no_credential(confirmation_id: int):
    raise CredentialIssuanceError("not needed here")
