from __future__ import annotations

"""
QR check-in: a read-only ``validate`` step that resolves a scanned credential to
a confirmation summary, and a ``register`` step that flips ``checked_in_at``
from null to a timestamp exactly once.

Register is a single conditional UPDATE (``... WHERE token = :t AND
checked_in_at IS NULL``); concurrent scans of the same badge are resolved by
the database, the loser sees zero affected rows and reports AlreadyCheckedIn
with the winner's timestamp.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .attendance import find_confirmation
from .credentials import CHECKIN_TYPE, CheckinEnvelope, MemberBadgeEnvelope, decode_envelope
from .errors import (
    AlreadyCheckedIn,
    EventSelectionRequired,
    InternalError,
    NotFoundError,
    UnrecognizedCredential,
    ValidationError,
)
from .models import Confirmation, Event, SystemLog


logger = logging.getLogger(__name__)


def _by_token(db: Session, token: str) -> Optional[Confirmation]:
    return db.execute(select(Confirmation).where(Confirmation.token == token)).scalars().first()


def summary(c: Confirmation) -> dict:
    member = c.member
    event = c.event
    return {
        "id": c.id,
        "qrToken": c.token,
        "userName": member.name if member else None,
        "userEmail": member.email if member else None,
        "eventId": event.id if event else c.event_id,
        "eventName": event.name if event else None,
        "eventDate": event.event_date if event else None,
        "eventDestination": event.destination if event else None,
        "peEscolhido": c.meeting_point,
        "motoDia": c.motorcycle,
        "checkedIn": c.checked_in_at is not None,
        "checkedInAt": c.checked_in_at,
    }


def validate(
    db: Session,
    qr_data: Optional[str] = None,
    token: Optional[str] = None,
    event_id: Optional[str] = None,
) -> dict:
    """Resolve a scanned credential to its confirmation summary without writing anything."""
    if qr_data:
        envelope = decode_envelope(qr_data)
        if isinstance(envelope, CheckinEnvelope):
            confirmation = _by_token(db, envelope.token)
            if not confirmation:
                raise NotFoundError("QR Code inválido ou não encontrado")
        elif isinstance(envelope, MemberBadgeEnvelope):
            if not event_id:
                raise EventSelectionRequired()
            confirmation = find_confirmation(db, event_id, envelope.user_id)
            if not confirmation:
                raise NotFoundError("Membro não inscrito neste evento")
        elif envelope.kind == CHECKIN_TYPE:
            raise UnrecognizedCredential("QR Code de evento inválido")
        else:
            raise UnrecognizedCredential()
    elif token and token.strip():
        confirmation = _by_token(db, token.strip())
        if not confirmation:
            raise NotFoundError("QR Code inválido ou não encontrado")
    else:
        raise ValidationError("Token não fornecido")
    return summary(confirmation)


def _register_token(token: Optional[str], qr_data: Optional[str]) -> str:
    if qr_data:
        envelope = decode_envelope(qr_data)
        if not isinstance(envelope, CheckinEnvelope):
            raise UnrecognizedCredential("Formato de QR Code inválido")
        return envelope.token
    if token and token.strip():
        return token.strip()
    raise ValidationError("Token não fornecido")


def register(
    db: Session,
    token: Optional[str] = None,
    qr_data: Optional[str] = None,
    actor: Optional[str] = None,
) -> dict:
    """Check a confirmation in. Succeeds at most once per token."""
    search_token = _register_token(token, qr_data)
    try:
        result = db.execute(
            update(Confirmation)
            .where(Confirmation.token == search_token, Confirmation.checked_in_at.is_(None))
            .values(checked_in_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        checked_in = result.rowcount == 1
        if checked_in:
            db.add(
                SystemLog(
                    actor=actor or "checkin",
                    action="checkin",
                    entity="confirmation_token",
                    entity_id=search_token,
                    status="ok",
                )
            )
            db.commit()
        else:
            db.rollback()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Check-in registration failed")
        raise InternalError("Erro ao registrar check-in") from exc

    confirmation = _by_token(db, search_token)
    if checked_in and confirmation:
        logger.info("Check-in registered confirmation=%s", confirmation.id)
        return summary(confirmation)
    if confirmation is None:
        raise NotFoundError("QR Code não encontrado")
    if confirmation.checked_in_at is not None:
        raise AlreadyCheckedIn(
            checked_in_at=confirmation.checked_in_at.isoformat(),
            user_name=confirmation.member.name if confirmation.member else None,
        )
    # Zero rows updated yet the row is still unchecked: nothing sensible to report but a server fault
    logger.error("Conditional check-in update missed an unchecked confirmation=%s", confirmation.id)
    raise InternalError("Erro ao registrar check-in")


def attendance_report(db: Session, event_id: str) -> dict:
    event = db.get(Event, event_id)
    if not event:
        raise NotFoundError("Event not found")
    rows: List[Confirmation] = db.execute(
        select(Confirmation).where(Confirmation.event_id == event_id)
    ).scalars().all()

    checked = sorted((c for c in rows if c.checked_in_at), key=lambda c: c.checked_in_at, reverse=True)
    pending = sorted((c for c in rows if not c.checked_in_at), key=lambda c: c.id)
    total = len(rows)
    stats = {
        "totalConfirmations": total,
        "totalCheckedIn": len(checked),
        "totalNotCheckedIn": len(pending),
        "attendanceRate": round(len(checked) * 100 / total) if total else 0,
        "firstCheckIn": checked[-1].checked_in_at if checked else None,
        "lastCheckIn": checked[0].checked_in_at if checked else None,
    }
    attendees = [
        {
            "id": c.id,
            "userName": c.member.name if c.member else None,
            "userEmail": c.member.email if c.member else None,
            "peEscolhido": c.meeting_point,
            "motoDia": c.motorcycle,
            "novaMoto": c.new_bike,
            "aniversarianteSemana": c.birthday_window,
            "checkedIn": c.checked_in_at is not None,
            "checkedInAt": c.checked_in_at,
        }
        for c in checked + pending
    ]
    return {"stats": stats, "attendees": attendees}
