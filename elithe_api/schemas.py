from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field


# Members
class MemberOut(BaseModel):
    id: str
    nome: str
    email: Optional[str] = None
    role: str
    moto_atual: Optional[str] = None
    data_nascimento: Optional[date] = None
    participacoes_totais: int
    estrelinhas: int


class BadgeOut(BaseModel):
    userId: str
    qr_code: str
    payload: str


# Meeting points (PEs)
class MeetingPointIn(BaseModel):
    nome_pe: str = Field(min_length=1)
    link_maps_pe: Optional[str] = None
    horario_pe: Optional[str] = None
    destino_pe_id: Optional[int] = None


class MeetingPointOut(BaseModel):
    id: int
    evento_id: str
    nome: str
    localizacao: Optional[str] = None
    horario: Optional[str] = None
    destino_pe_id: Optional[int] = None


class PeTemplateCreate(BaseModel):
    nome: str = Field(min_length=1)
    localizacao: Optional[str] = None


class PeTemplateOut(BaseModel):
    id: int
    nome: str
    localizacao: Optional[str] = None


# Events
class EventBase(BaseModel):
    nome: str = Field(min_length=1)
    data: date
    destino: str = Field(min_length=1)
    link_maps_destino: Optional[str] = None
    link_inscricao: Optional[str] = None
    observacoes: Optional[str] = None
    pedagios: Optional[str] = None
    banner_url: Optional[str] = None
    pes: Optional[List[MeetingPointIn]] = None


class EventCreate(EventBase):
    pass


class EventUpdate(EventBase):
    pass


class EventActiveToggle(BaseModel):
    ativo: bool


class EventOut(BaseModel):
    id: str
    nome: str
    data: date
    destino: str
    link_maps_destino: Optional[str] = None
    link_inscricao: Optional[str] = None
    observacoes: Optional[str] = None
    pedagios: Optional[str] = None
    banner_url: Optional[str] = None
    ativo: bool
    pes: List[MeetingPointOut] = []


class EventsListResponse(BaseModel):
    items: List[EventOut]
    total: int


# Attendance
class AttendRequest(BaseModel):
    moto_dia: Optional[str] = None
    pe_escolhido: Optional[str] = None


class ConfirmationOut(BaseModel):
    id: int
    evento_id: str
    usuario_id: str
    moto_dia: str
    pe_escolhido: str
    nova_moto: bool
    aniversariante_semana: bool
    estrelinhas_snapshot: int
    qr_token: Optional[str] = None
    checked_in_at: Optional[datetime] = None
    created_at: datetime


class StatusOut(BaseModel):
    confirmed: bool
    data: Optional[ConfirmationOut] = None


class HistoryItem(ConfirmationOut):
    evento_nome: Optional[str] = None
    evento_data: Optional[date] = None
    evento_destino: Optional[str] = None


class EventConfirmationItem(ConfirmationOut):
    usuario_nome: Optional[str] = None
    usuario_moto: Optional[str] = None


# Check-in
class CheckinValidateRequest(BaseModel):
    qrData: Optional[str] = None
    token: Optional[str] = None
    eventId: Optional[str] = None


class CheckinRegisterRequest(BaseModel):
    token: Optional[str] = None
    qrData: Optional[str] = None
