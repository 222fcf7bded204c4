from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import checkin
from ..deps import get_db, require_admin
from ..identity import Identity
from ..schemas import CheckinRegisterRequest, CheckinValidateRequest


router = APIRouter(prefix="/api/checkin", tags=["checkin"])


@router.post("/validate")
def checkin_validate(
    payload: CheckinValidateRequest,
    db: Session = Depends(get_db),
    _: Identity = Depends(require_admin),
) -> dict:
    confirmation = checkin.validate(db, qr_data=payload.qrData, token=payload.token, event_id=payload.eventId)
    return {"valid": True, "confirmation": confirmation}


@router.post("/register")
def checkin_register(
    payload: CheckinRegisterRequest,
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_admin),
) -> dict:
    checked_in = checkin.register(db, token=payload.token, qr_data=payload.qrData, actor=identity.member_id)
    return {"success": True, "checkedIn": checked_in}


@router.get("/events/{event_id}/attendance")
def checkin_attendance(event_id: str, db: Session = Depends(get_db), _: Identity = Depends(require_admin)) -> dict:
    return checkin.attendance_report(db, event_id)
