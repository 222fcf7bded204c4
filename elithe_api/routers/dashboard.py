from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..config import get_settings
from ..dashboard import compute_stats, compute_top_participants, compute_upcoming_birthdays
from ..deps import get_db, require_admin


router = APIRouter(prefix="/api/admin/dashboard", tags=["dashboard"], dependencies=[Depends(require_admin)])


@router.get("/stats")
def dashboard_stats(db: Session = Depends(get_db)) -> dict:
    return compute_stats(db)


@router.get("/top10")
def dashboard_top10(db: Session = Depends(get_db)) -> list:
    return compute_top_participants(db, limit=10)


@router.get("/birthdays")
def dashboard_birthdays(db: Session = Depends(get_db)) -> list:
    return compute_upcoming_birthdays(db, lookahead_days=get_settings().birthday_lookahead_days)
