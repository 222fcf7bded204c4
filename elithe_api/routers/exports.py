from __future__ import annotations

import csv
import io
from typing import Iterable, Optional, List

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from ..checkin import attendance_report
from ..deps import get_db, require_admin


router = APIRouter(prefix="/api", tags=["exports"], dependencies=[Depends(require_admin)])

ATTENDANCE_FIELDS = [
    "id",
    "userName",
    "userEmail",
    "peEscolhido",
    "motoDia",
    "novaMoto",
    "aniversarianteSemana",
    "checkedIn",
    "checkedInAt",
]


def _stream_csv(rows: Iterable[dict], filename: str, header_fields: Optional[List[str]] = None) -> StreamingResponse:
    buffer = io.StringIO()
    row_iter = iter(rows)
    first_row = next(row_iter, None)
    if header_fields is not None:
        fieldnames = header_fields
    elif first_row is not None:
        fieldnames = list(first_row.keys())
    else:
        fieldnames = []
    writer = csv.DictWriter(buffer, fieldnames=fieldnames, extrasaction="ignore")
    writer.writeheader()
    if first_row is not None:
        writer.writerow(first_row)
    for row in row_iter:
        writer.writerow(row)
    buffer.seek(0)
    headers = {"Content-Disposition": f"attachment; filename={filename}"}
    return StreamingResponse(iter([buffer.getvalue()]), media_type="text/csv", headers=headers)


@router.get("/export.attendance.csv")
def export_attendance(event_id: str = Query(...), db: Session = Depends(get_db)):
    report = attendance_report(db, event_id)
    rows = (
        {
            **a,
            "userName": a["userName"] or "",
            "userEmail": a["userEmail"] or "",
            "checkedInAt": a["checkedInAt"].isoformat() if a["checkedInAt"] else "",
        }
        for a in report["attendees"]
    )
    return _stream_csv(rows, f"attendance_{event_id}.csv", ATTENDANCE_FIELDS)
