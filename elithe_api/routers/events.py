from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from .. import attendance
from ..deps import get_current_identity, get_db, require_admin
from ..identity import Identity
from ..models import Event, MeetingPoint
from ..schemas import (
    AttendRequest,
    EventActiveToggle,
    EventConfirmationItem,
    EventCreate,
    EventOut,
    EventsListResponse,
    EventUpdate,
    HistoryItem,
    MeetingPointIn,
    MeetingPointOut,
    StatusOut,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/events", tags=["events"])


def activate_event(db: Session, event_id: str) -> Event:
    """Make ``event_id`` the only active event; every other event is deactivated in the same transaction."""
    event: Optional[Event] = db.get(Event, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    db.execute(
        update(Event).where(Event.id != event_id).values(active=False).execution_options(synchronize_session=False)
    )
    event.active = True
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


def _meeting_point_out(pe: MeetingPoint) -> MeetingPointOut:
    return MeetingPointOut(
        id=pe.id,
        evento_id=pe.event_id,
        nome=pe.name,
        localizacao=pe.location,
        horario=pe.time,
        destino_pe_id=pe.template_id,
    )


def _event_out(e: Event) -> EventOut:
    return EventOut(
        id=e.id,
        nome=e.name,
        data=e.event_date,
        destino=e.destination,
        link_maps_destino=e.maps_link,
        link_inscricao=e.signup_link,
        observacoes=e.notes,
        pedagios=e.tolls,
        banner_url=e.banner_url,
        ativo=e.active,
        pes=[_meeting_point_out(pe) for pe in e.meeting_points],
    )


def _build_meeting_points(pes: Optional[List[MeetingPointIn]]) -> List[MeetingPoint]:
    return [
        MeetingPoint(name=pe.nome_pe, location=pe.link_maps_pe, time=pe.horario_pe, template_id=pe.destino_pe_id)
        for pe in (pes or [])
    ]


def _get_event_or_404(db: Session, event_id: str) -> Event:
    event: Optional[Event] = db.get(Event, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


# Public
@router.get("/active")
def events_active(db: Session = Depends(get_db)):
    event = db.execute(select(Event).where(Event.active.is_(True)).order_by(Event.updated_at.desc())).scalars().first()
    if not event:
        return {"message": "Nenhum rolê ativo no momento"}
    return _event_out(event)


# Member
@router.get("/history", response_model=List[HistoryItem])
def events_history(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    return attendance.history(db, identity.member_id)


@router.post("/{event_id}/attend", status_code=201)
def events_attend(
    event_id: str,
    payload: AttendRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    result = attendance.confirm(db, event_id, identity.member_id, payload.moto_dia, payload.pe_escolhido)
    return result.to_response()


@router.get("/{event_id}/status", response_model=StatusOut)
def events_status(event_id: str, identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    return attendance.get_status(db, event_id, identity.member_id)


# Admin
@router.get("", response_model=EventsListResponse)
def events_list(
    db: Session = Depends(get_db),
    _: Identity = Depends(require_admin),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500),
):
    rows = db.execute(select(Event).order_by(Event.event_date.desc())).scalars().all()
    items = rows[(page - 1) * page_size : page * page_size]
    return {"items": [_event_out(e) for e in items], "total": len(rows)}


@router.get("/{event_id}", response_model=EventOut)
def events_get(event_id: str, db: Session = Depends(get_db), _: Identity = Depends(require_admin)):
    return _event_out(_get_event_or_404(db, event_id))


@router.post("", response_model=EventOut, status_code=201)
def events_create(payload: EventCreate, db: Session = Depends(get_db), _: Identity = Depends(require_admin)):
    event = Event(
        id=str(uuid.uuid4()),
        name=payload.nome,
        event_date=payload.data,
        destination=payload.destino,
        maps_link=payload.link_maps_destino,
        signup_link=payload.link_inscricao,
        notes=payload.observacoes,
        tolls=payload.pedagios,
        banner_url=payload.banner_url,
        active=False,
    )
    event.meeting_points = _build_meeting_points(payload.pes)
    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info("Event created id=%s", event.id)
    return _event_out(event)


@router.put("/{event_id}", response_model=EventOut)
def events_update(
    event_id: str, payload: EventUpdate, db: Session = Depends(get_db), _: Identity = Depends(require_admin)
):
    event = _get_event_or_404(db, event_id)
    event.name = payload.nome
    event.event_date = payload.data
    event.destination = payload.destino
    event.maps_link = payload.link_maps_destino
    event.signup_link = payload.link_inscricao
    event.notes = payload.observacoes
    event.tolls = payload.pedagios
    event.banner_url = payload.banner_url
    # PEs are replaced wholesale
    event.meeting_points = _build_meeting_points(payload.pes)
    db.add(event)
    db.commit()
    db.refresh(event)
    return _event_out(event)


@router.put("/{event_id}/active", response_model=EventOut)
def events_toggle_active(
    event_id: str, payload: EventActiveToggle, db: Session = Depends(get_db), _: Identity = Depends(require_admin)
):
    if payload.ativo:
        event = activate_event(db, event_id)
    else:
        event = _get_event_or_404(db, event_id)
        event.active = False
        db.add(event)
        db.commit()
        db.refresh(event)
    logger.info("Event %s %s", event_id, "activated" if event.active else "deactivated")
    return _event_out(event)


@router.delete("/{event_id}")
def events_delete(event_id: str, db: Session = Depends(get_db), _: Identity = Depends(require_admin)) -> dict:
    event = _get_event_or_404(db, event_id)
    db.delete(event)
    db.commit()
    return {"ok": True, "message": "Event deleted"}


@router.get("/{event_id}/pes", response_model=List[MeetingPointOut])
def events_pes(event_id: str, db: Session = Depends(get_db), _: Identity = Depends(require_admin)):
    return [_meeting_point_out(pe) for pe in _get_event_or_404(db, event_id).meeting_points]


@router.get("/{event_id}/confirmations", response_model=List[EventConfirmationItem])
def events_confirmations(event_id: str, db: Session = Depends(get_db), _: Identity = Depends(require_admin)):
    return attendance.list_confirmations(db, event_id)
