from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..deps import get_current_identity, get_db, require_admin
from ..identity import Identity
from ..models import PeTemplate
from ..schemas import PeTemplateCreate, PeTemplateOut


router = APIRouter(prefix="/api/pe-templates", tags=["pe_templates"])


def _template_out(t: PeTemplate) -> PeTemplateOut:
    return PeTemplateOut(id=t.id, nome=t.name, localizacao=t.location)


@router.get("", response_model=List[PeTemplateOut])
def pe_templates_list(db: Session = Depends(get_db), _: Identity = Depends(get_current_identity)):
    rows = db.execute(select(PeTemplate).order_by(PeTemplate.name)).scalars().all()
    return [_template_out(t) for t in rows]


@router.post("", response_model=PeTemplateOut, status_code=201)
def pe_templates_create(payload: PeTemplateCreate, db: Session = Depends(get_db), _: Identity = Depends(require_admin)):
    t = PeTemplate(name=payload.nome.strip(), location=payload.localizacao)
    db.add(t)
    db.commit()
    db.refresh(t)
    return _template_out(t)


@router.delete("/{template_id}", status_code=204)
def pe_templates_delete(template_id: int, db: Session = Depends(get_db), _: Identity = Depends(require_admin)):
    t = db.get(PeTemplate, template_id)
    if not t:
        raise HTTPException(status_code=404, detail="Not found")
    db.delete(t)
    db.commit()
    return Response(status_code=204)
