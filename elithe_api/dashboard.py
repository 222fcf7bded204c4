from __future__ import annotations

"""
Admin dashboard figures, computed straight from the relational tables.

- totalMembers = count(members)
- activeEvents = count(events where active)
- totalConfirmations = count(confirmations on active events)
- avgAttendanceRate = round(totalConfirmations / (totalMembers * max(1, activeEvents)), 2), 0 without members
- top10 rate = confirmations per member / count(events) * 100, one decimal
- birthdays = members whose next birthday falls within the lookahead window
"""

from datetime import date
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from .models import Confirmation, Event, Member
from .utils import WEEKDAY_NAMES_PT, days_until_birthday, next_birthday


def compute_stats(db: Session) -> dict:
    total_members = db.execute(select(func.count()).select_from(Member)).scalar_one() or 0
    active_events = db.execute(
        select(func.count()).select_from(Event).where(Event.active.is_(True))
    ).scalar_one() or 0
    total_confirmations = db.execute(
        select(func.count())
        .select_from(Confirmation)
        .join(Event, Event.id == Confirmation.event_id)
        .where(Event.active.is_(True))
    ).scalar_one() or 0

    avg_rate = 0.0
    if total_members > 0:
        avg_rate = round(float(total_confirmations) / float(total_members * (active_events or 1)), 2)

    return {
        "totalMembers": int(total_members),
        "activeEvents": int(active_events),
        "totalConfirmations": int(total_confirmations),
        "avgAttendanceRate": avg_rate,
    }


def compute_top_participants(db: Session, limit: int = 10) -> List[dict]:
    total_events = db.execute(select(func.count()).select_from(Event)).scalar_one() or 0
    if total_events == 0:
        return []

    counts = dict(
        db.execute(
            select(Confirmation.member_id, func.count()).group_by(Confirmation.member_id)
        ).all()
    )
    members = db.execute(select(Member.id, Member.name, Member.email)).all()
    rows = []
    for member_id, name, email in members:
        confirmed = int(counts.get(member_id, 0))
        rows.append(
            {
                "userId": member_id,
                "name": name or email,
                "confirmed": confirmed,
                "total": int(total_events),
                "rate": round(confirmed * 100.0 / total_events, 1),
            }
        )
    rows.sort(key=lambda r: (-r["rate"], r["name"] or ""))
    return rows[:limit]


def compute_upcoming_birthdays(db: Session, today: Optional[date] = None, lookahead_days: int = 7) -> List[dict]:
    today = today or date.today()
    members = db.execute(
        select(Member.id, Member.name, Member.email, Member.birth_date).where(Member.birth_date.is_not(None))
    ).all()
    items = []
    for member_id, name, email, birth_date in members:
        days_until = days_until_birthday(today, birth_date)
        if days_until > lookahead_days:
            continue
        upcoming = next_birthday(today, birth_date)
        items.append(
            {
                "userId": member_id,
                "name": name or email,
                "birthDate": f"{birth_date.day:02d}/{birth_date.month:02d}",
                "dayOfWeek": WEEKDAY_NAMES_PT[upcoming.weekday()],
                "daysUntil": days_until,
                "isToday": days_until == 0,
            }
        )
    items.sort(key=lambda b: b["daysUntil"])
    return items
