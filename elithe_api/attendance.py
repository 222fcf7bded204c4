from __future__ import annotations

"""
Attendance confirmation for rides.

``confirm`` is the only writer: it validates the request, updates the member's
stored motorcycle and participation counters, inserts the confirmation in one
transaction and then, best effort, attaches a check-in credential. A credential
failure leaves a valid confirmation without a token.

Derived values (fixed at creation time):
- new_bike: submitted motorcycle differs (trimmed, case-insensitive) from a previously stored one
- birthday_window: event date within +/- N days of the member's birthday (circular year)
- reward tiers (estrelinhas) = participation_count // reward_tier_size
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from . import credentials
from .config import get_settings
from .errors import (
    AlreadyConfirmed,
    CredentialIssuanceError,
    EventNotAvailable,
    InternalError,
    NotFoundError,
    ValidationError,
)
from .models import Confirmation, Event, Member, SystemLog
from .schemas import ConfirmationOut, EventConfirmationItem, HistoryItem
from .utils import in_birthday_window, normalize_motorcycle


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParticipationStats:
    participation_count: int
    reward_tiers: int
    new_bike: bool
    birthday_window: bool


@dataclass(frozen=True)
class ConfirmationResult:
    confirmation_id: int
    stats: ParticipationStats
    credential: Optional[credentials.IssuedCredential] = None

    @property
    def token(self) -> Optional[str]:
        return self.credential.token if self.credential else None

    @property
    def qr_code(self) -> Optional[str]:
        return self.credential.data_url if self.credential else None

    def to_response(self) -> dict:
        return {
            "message": "Presença confirmada!",
            "confirmation": {
                "id": self.confirmation_id,
                "qr_code": self.qr_code,
                "qr_token": self.token,
            },
            "stats": {
                "participacoes": self.stats.participation_count,
                "estrelinhas": self.stats.reward_tiers,
                "nova_moto": self.stats.new_bike,
                "aniversariante": self.stats.birthday_window,
            },
        }


def reward_tiers_for(participation_count: int, tier_size: int = 4) -> int:
    if tier_size <= 0:
        return 0
    return max(0, participation_count) // tier_size


def find_confirmation(db: Session, event_id: str, member_id: str) -> Optional[Confirmation]:
    return db.execute(
        select(Confirmation).where(Confirmation.event_id == event_id, Confirmation.member_id == member_id)
    ).scalars().first()


def _apply_motorcycle(member: Member, motorcycle: str) -> bool:
    """Store the day's motorcycle on the profile; True only when it replaces a different bike."""
    if not member.current_motorcycle:
        member.current_motorcycle = motorcycle
        return False
    if normalize_motorcycle(member.current_motorcycle) != normalize_motorcycle(motorcycle):
        member.current_motorcycle = motorcycle
        return True
    return False


def confirm(
    db: Session,
    event_id: str,
    member_id: str,
    motorcycle: Optional[str],
    meeting_point: Optional[str],
    issuer: Optional[Callable[[int], credentials.IssuedCredential]] = None,
) -> ConfirmationResult:
    motorcycle = (motorcycle or "").strip() if isinstance(motorcycle, str) else ""
    meeting_point = (meeting_point or "").strip() if isinstance(meeting_point, str) else ""
    if not motorcycle or not meeting_point:
        raise ValidationError("Moto and PE are required")

    event = db.get(Event, event_id)
    if not event or not event.active:
        raise EventNotAvailable()
    member = db.get(Member, member_id)
    if not member:
        raise NotFoundError("Member profile not found")
    if find_confirmation(db, event_id, member_id):
        raise AlreadyConfirmed()

    settings = get_settings()
    try:
        # Increment in SQL; concurrent confirms for one member serialize on this row
        db.execute(
            update(Member)
            .where(Member.id == member_id)
            .values(participation_count=Member.participation_count + 1)
            .execution_options(synchronize_session=False)
        )
        participation_count = db.execute(
            select(Member.participation_count).where(Member.id == member_id)
        ).scalar_one()
        reward_tiers = reward_tiers_for(participation_count, settings.reward_tier_size)
        member.participation_count = participation_count
        member.reward_tiers = reward_tiers
        new_bike = _apply_motorcycle(member, motorcycle)
        birthday = in_birthday_window(event.event_date, member.birth_date, settings.birthday_window_days)
        confirmation = Confirmation(
            event_id=event.id,
            member_id=member.id,
            motorcycle=motorcycle,
            meeting_point=meeting_point,
            new_bike=new_bike,
            birthday_window=birthday,
            reward_tier_snapshot=reward_tiers,
        )
        db.add(member)
        db.add(confirmation)
        db.commit()
    except IntegrityError:
        # A concurrent request for the same (event, member) won the unique constraint
        db.rollback()
        raise AlreadyConfirmed()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Attendance confirmation failed for event=%s member=%s", event_id, member_id)
        raise InternalError() from exc

    db.refresh(confirmation)
    stats = ParticipationStats(
        participation_count=participation_count,
        reward_tiers=reward_tiers,
        new_bike=new_bike,
        birthday_window=birthday,
    )
    credential = _attach_credential(db, confirmation, issuer or credentials.issue)
    logger.info(
        "Attendance confirmed event=%s member=%s confirmation=%s credential=%s",
        event_id,
        member_id,
        confirmation.id,
        "issued" if credential else "missing",
    )
    return ConfirmationResult(confirmation_id=confirmation.id, stats=stats, credential=credential)


def _attach_credential(
    db: Session,
    confirmation: Confirmation,
    issuer: Callable[[int], credentials.IssuedCredential],
) -> Optional[credentials.IssuedCredential]:
    confirmation_id = confirmation.id
    try:
        credential = issuer(confirmation_id)
        confirmation.token = credential.token
        db.add(confirmation)
        db.commit()
        return credential
    except (CredentialIssuanceError, SQLAlchemyError) as exc:
        db.rollback()
        logger.warning("Check-in credential not issued for confirmation=%s: %s", confirmation_id, exc)
        _record_issue_failure(db, confirmation_id, str(exc))
        return None


def _record_issue_failure(db: Session, confirmation_id: int, message: str) -> None:
    try:
        db.add(
            SystemLog(
                actor="attendance",
                action="credential_issue",
                entity="confirmation",
                entity_id=str(confirmation_id),
                status="error",
                message=message[:1000],
            )
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not record credential failure for confirmation=%s", confirmation_id)


def confirmation_out(c: Confirmation) -> ConfirmationOut:
    return ConfirmationOut(
        id=c.id,
        evento_id=c.event_id,
        usuario_id=c.member_id,
        moto_dia=c.motorcycle,
        pe_escolhido=c.meeting_point,
        nova_moto=c.new_bike,
        aniversariante_semana=c.birthday_window,
        estrelinhas_snapshot=c.reward_tier_snapshot,
        qr_token=c.token,
        checked_in_at=c.checked_in_at,
        created_at=c.created_at,
    )


def get_status(db: Session, event_id: str, member_id: str) -> dict:
    confirmation = find_confirmation(db, event_id, member_id)
    if not confirmation:
        return {"confirmed": False}
    return {"confirmed": True, "data": confirmation_out(confirmation)}


def history(db: Session, member_id: str) -> List[HistoryItem]:
    rows = db.execute(
        select(Confirmation)
        .where(Confirmation.member_id == member_id)
        .order_by(Confirmation.created_at.desc(), Confirmation.id.desc())
    ).scalars().all()
    return [
        HistoryItem(
            **confirmation_out(c).model_dump(),
            evento_nome=c.event.name if c.event else None,
            evento_data=c.event.event_date if c.event else None,
            evento_destino=c.event.destination if c.event else None,
        )
        for c in rows
    ]


def list_confirmations(db: Session, event_id: str) -> List[EventConfirmationItem]:
    if not db.get(Event, event_id):
        raise NotFoundError("Event not found")
    rows = db.execute(
        select(Confirmation).where(Confirmation.event_id == event_id).order_by(Confirmation.id)
    ).scalars().all()
    return [
        EventConfirmationItem(
            **confirmation_out(c).model_dump(),
            usuario_nome=c.member.name if c.member else None,
            usuario_moto=c.member.current_motorcycle if c.member else None,
        )
        for c in rows
    ]
