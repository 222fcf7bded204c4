from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from .. import credentials
from ..deps import get_current_identity, get_db, require_admin
from ..identity import Identity
from ..models import Member
from ..schemas import BadgeOut, MemberOut


router = APIRouter(prefix="/api/members", tags=["members"])


class ProfileUpdate(BaseModel):
    nome: Optional[str] = Field(default=None, min_length=1)
    email: Optional[str] = None
    moto_atual: Optional[str] = None
    data_nascimento: Optional[date] = None


def _member_out(m: Member) -> MemberOut:
    return MemberOut(
        id=m.id,
        nome=m.name,
        email=m.email,
        role=m.role,
        moto_atual=m.current_motorcycle,
        data_nascimento=m.birth_date,
        participacoes_totais=m.participation_count,
        estrelinhas=m.reward_tiers,
    )


def _get_profile_or_404(db: Session, member_id: str) -> Member:
    member: Optional[Member] = db.get(Member, member_id)
    if not member:
        raise HTTPException(status_code=404, detail="Member profile not found")
    return member


@router.get("/me", response_model=MemberOut)
def members_me(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    return _member_out(_get_profile_or_404(db, identity.member_id))


@router.put("/me", response_model=MemberOut)
def members_me_update(
    payload: ProfileUpdate, identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)
):
    member: Optional[Member] = db.get(Member, identity.member_id)
    if not member:
        if not payload.nome:
            raise HTTPException(status_code=400, detail="Name is required")
        member = Member(id=identity.member_id, name=payload.nome, email=payload.email or identity.email)
    # Counters and role are never client-writable
    if payload.nome is not None:
        member.name = payload.nome
    if payload.email is not None:
        member.email = payload.email
    if payload.moto_atual is not None:
        member.current_motorcycle = payload.moto_atual.strip() or None
    if payload.data_nascimento is not None:
        member.birth_date = payload.data_nascimento
    member.role = identity.role
    db.add(member)
    db.commit()
    db.refresh(member)
    return _member_out(member)


@router.get("/me/badge", response_model=BadgeOut)
def members_me_badge(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    member = _get_profile_or_404(db, identity.member_id)
    badge = credentials.issue_member_badge(member.id)
    return BadgeOut(userId=member.id, qr_code=badge.data_url, payload=badge.payload)


@router.get("")
def members_list(
    db: Session = Depends(get_db),
    _: Identity = Depends(require_admin),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500),
) -> dict:
    rows = db.execute(select(Member).order_by(Member.name)).scalars().all()
    items = rows[(page - 1) * page_size : page * page_size]
    return {"items": [_member_out(m) for m in items], "total": len(rows)}
